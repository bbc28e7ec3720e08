import random

import pytest

from camconv.jpeg_encoder import EncoderParams, JpegEncoder, Subsampling, encode
from camconv.jpeg_tables import (
    DC_LUM_BITS,
    DC_LUM_VALUES,
    STD_CHROMA_QUANT,
    STD_LUM_QUANT,
    compute_quant_table,
    rgb_to_y,
)
from camconv.pixformat import ConversionError


def _noise(size, seed=1):
    rng = random.Random(seed)
    return bytes(rng.randrange(256) for _ in range(size))


def _segments(data):
    """Return the header segments as (marker, payload) and the entropy-coded tail."""
    assert data[:2] == b"\xff\xd8"
    pos = 2
    segments = []
    while True:
        assert data[pos] == 0xFF
        marker = data[pos + 1]
        length = int.from_bytes(data[pos + 2:pos + 4], "big")
        segments.append((marker, data[pos + 4:pos + 2 + length]))
        pos += 2 + length
        if marker == 0xDA:
            return segments, data[pos:]


def _payload(segments, marker):
    return [p for m, p in segments if m == marker]


def test_default_params():
    params = EncoderParams()
    assert params.quality == 85
    assert params.subsampling is Subsampling.H2V2
    assert params.check() is True


@pytest.mark.parametrize("quality", [0, 101, -5])
def test_check_rejects_bad_quality(quality):
    assert EncoderParams(quality=quality).check() is False


def test_check_rejects_bad_subsampling():
    assert EncoderParams(subsampling=7).check() is False


def test_image_framing():
    data = encode(_noise(8 * 8 * 3), 8, 8, 3)
    assert data[:2] == b"\xff\xd8"
    assert data[-2:] == b"\xff\xd9"


def test_app0_payload():
    segments, _ = _segments(encode(bytes(64), 8, 8, 1, EncoderParams(subsampling=Subsampling.Y_ONLY)))
    assert segments[0] == (0xE0, b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00")


def test_colour_segment_order():
    segments, _ = _segments(encode(_noise(16 * 16 * 3), 16, 16, 3))
    assert [m for m, _ in segments] == [0xE0, 0xDB, 0xDB, 0xC0, 0xC4, 0xC4, 0xC4, 0xC4, 0xDA]


def test_grey_has_single_tables():
    params = EncoderParams(subsampling=Subsampling.Y_ONLY)
    segments, _ = _segments(encode(_noise(64), 8, 8, 1, params))
    assert len(_payload(segments, 0xDB)) == 1
    assert len(_payload(segments, 0xC4)) == 2
    assert _payload(segments, 0xDA) == [bytes((1, 1, 0x00, 0, 63, 0))]


@pytest.mark.parametrize(
    "subsampling, luma_sampling",
    [(Subsampling.H1V1, 0x11), (Subsampling.H2V1, 0x21), (Subsampling.H2V2, 0x22)],
)
def test_sof_records_geometry(subsampling, luma_sampling):
    width, height = 20, 13
    data = encode(_noise(width * height * 3), width, height, 3, EncoderParams(50, subsampling))
    segments, _ = _segments(data)
    (sof,) = _payload(segments, 0xC0)
    assert sof[0] == 8
    assert int.from_bytes(sof[1:3], "big") == height
    assert int.from_bytes(sof[3:5], "big") == width
    assert sof[5:] == bytes((3, 1, luma_sampling, 0, 2, 0x11, 1, 3, 0x11, 1))


def test_sos_for_colour():
    segments, _ = _segments(encode(_noise(16 * 16 * 3), 16, 16, 3))
    assert _payload(segments, 0xDA) == [bytes((3, 1, 0x00, 2, 0x11, 3, 0x11, 0, 63, 0))]


def test_dqt_holds_scaled_tables():
    segments, _ = _segments(encode(_noise(16 * 16 * 3), 16, 16, 3, EncoderParams(quality=30)))
    lum, chroma = _payload(segments, 0xDB)
    assert lum == b"\x00" + bytes(compute_quant_table(30, STD_LUM_QUANT))
    assert chroma == b"\x01" + bytes(compute_quant_table(30, STD_CHROMA_QUANT))


def test_first_dht_is_dc_luma():
    segments, _ = _segments(encode(_noise(16 * 16 * 3), 16, 16, 3))
    first = _payload(segments, 0xC4)[0]
    assert first == b"\x00" + bytes(DC_LUM_BITS[1:]) + bytes(DC_LUM_VALUES)


def test_entropy_data_is_byte_stuffed():
    _, tail = _segments(encode(_noise(32 * 32 * 3, seed=7), 32, 32, 3, EncoderParams(quality=100)))
    body = tail[:-2]
    assert tail[-2:] == b"\xff\xd9"
    for index, byte in enumerate(body):
        if byte == 0xFF:
            assert body[index + 1] == 0x00


def test_chunks_are_bounded_and_end_with_empty_write():
    chunks = []
    width, height = 24, 24
    pixels = _noise(width * height * 3, seed=3)
    encoder = JpegEncoder(chunks.append, width, height, 3, EncoderParams())
    for row in range(height):
        encoder.process_scanline(pixels[row * width * 3:(row + 1) * width * 3])
    encoder.finish()
    assert chunks[-1] == b""
    assert all(len(chunk) <= 512 for chunk in chunks)
    assert all(len(chunk) == 512 for chunk in chunks[:-2])
    assert b"".join(chunks) == encode(pixels, width, height, 3)


def test_encoding_is_deterministic():
    pixels = _noise(16 * 16 * 3, seed=11)
    chunks = []
    encoder = JpegEncoder(chunks.append, 16, 16, 3, EncoderParams())
    for row in range(16):
        encoder.process_scanline(pixels[row * 16 * 3:(row + 1) * 16 * 3])
    encoder.finish()
    first = encode(pixels, 16, 16, 3)
    assert first == b"".join(chunks)
    assert first[-2:] == b"\xff\xd9"


def test_higher_quality_gives_more_data():
    pixels = _noise(32 * 32 * 3, seed=5)
    low = encode(pixels, 32, 32, 3, EncoderParams(quality=10))
    high = encode(pixels, 32, 32, 3, EncoderParams(quality=95))
    assert len(high) > len(low)


@pytest.mark.parametrize("subsampling", [Subsampling.Y_ONLY, Subsampling.H2V2])
def test_partial_mcu_rows_repeat_the_last_line(subsampling):
    width = 16
    rows = [_noise(width * 3, seed=s) for s in range(9)]
    params = EncoderParams(60, subsampling)
    short = encode(b"".join(rows), width, 9, 3, params)
    full = encode(b"".join(rows + [rows[-1]] * 7), width, 16, 3, params)
    short_segments, short_tail = _segments(short)
    full_segments, full_tail = _segments(full)
    assert short_tail == full_tail
    assert [s for s in short_segments if s[0] != 0xC0] == [s for s in full_segments if s[0] != 0xC0]


@pytest.mark.parametrize("subsampling", [Subsampling.Y_ONLY, Subsampling.H2V1])
def test_partial_mcu_columns_repeat_the_last_pixel(subsampling):
    narrow_rows = [_noise(9 * 3, seed=s + 20) for s in range(8)]
    wide_rows = [row + row[-3:] * 7 for row in narrow_rows]
    params = EncoderParams(70, subsampling)
    _, narrow_tail = _segments(encode(b"".join(narrow_rows), 9, 8, 3, params))
    _, wide_tail = _segments(encode(b"".join(wide_rows), 16, 8, 3, params))
    assert narrow_tail == wide_tail


def test_rgb_grey_matches_luma_input():
    width, height = 12, 10
    pixels = _noise(width * height * 3, seed=9)
    params = EncoderParams(80, Subsampling.Y_ONLY)
    from_rgb = encode(pixels, width, height, 3, params)
    from_luma = encode(rgb_to_y(pixels), width, height, 1, params)
    assert from_rgb == from_luma


@pytest.mark.parametrize(
    "width, height, channels, params",
    [
        (0, 8, 3, EncoderParams()),
        (8, 0, 3, EncoderParams()),
        (8, 8, 2, EncoderParams()),
        (8, 8, 3, EncoderParams(quality=0)),
    ],
)
def test_invalid_setup_raises(width, height, channels, params):
    with pytest.raises(ValueError):
        JpegEncoder(lambda chunk: True, width, height, channels, params)


def test_wrong_scanline_length_raises():
    encoder = JpegEncoder(lambda chunk: True, 8, 8, 3)
    with pytest.raises(ValueError):
        encoder.process_scanline(bytes(8 * 3 - 1))


def test_scanline_after_finish_raises():
    encoder = JpegEncoder(lambda chunk: True, 8, 8, 1, EncoderParams(subsampling=Subsampling.Y_ONLY))
    for _ in range(8):
        encoder.process_scanline(bytes(8))
    encoder.finish()
    with pytest.raises(ConversionError):
        encoder.process_scanline(bytes(8))
    with pytest.raises(ConversionError):
        encoder.finish()


def test_failed_write_during_header_raises():
    with pytest.raises(ConversionError):
        JpegEncoder(lambda chunk: False, 16, 16, 3, EncoderParams())


def test_failed_write_stops_further_writes():
    calls = []

    def write(chunk):
        calls.append(chunk)
        return False

    encoder = JpegEncoder(write, 8, 8, 1, EncoderParams(subsampling=Subsampling.Y_ONLY))
    for _ in range(8):
        encoder.process_scanline(bytes(8))
    with pytest.raises(ConversionError):
        encoder.finish()
    assert len(calls) == 1


def test_encode_rejects_short_buffer():
    with pytest.raises(ValueError):
        encode(bytes(10), 8, 8, 3)