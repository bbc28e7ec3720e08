import struct

import pytest

from camconv.pixformat import ConversionError, Frame, PixFormat
from camconv.to_bmp import (
    BMP_HEADER_LEN,
    bmp_header,
    fmt_to_bmp,
    fmt_to_rgb888,
    frame_to_bmp,
)
from camconv.yuv import yuv_to_rgb

_FIELDS = "<IIIIiiHHIIIIII"


def _parse(header):
    return struct.unpack(_FIELDS, header[2:BMP_HEADER_LEN])


def test_header_fields():
    header = bmp_header(4, 3, 24)
    assert len(header) == BMP_HEADER_LEN
    assert header[:2] == b"BM"
    (filesize, reserved, offset, dib, width, height, planes, bpp,
     compression, image_size, ppm_y, ppm_x, colors, important) = _parse(header)
    assert filesize == BMP_HEADER_LEN + 4 * 3 * 3
    assert reserved == 0
    assert offset == BMP_HEADER_LEN
    assert dib == 40
    assert (width, height) == (4, -3)
    assert (planes, bpp, compression) == (1, 24, 0)
    assert image_size == 36
    assert ppm_x == ppm_y == 0x0B13
    assert colors == important == 0


def test_rgb888_bmp():
    src = bytes(range(2 * 2 * 3))
    out = fmt_to_bmp(src, 2, 2, PixFormat.RGB888)
    assert len(out) == BMP_HEADER_LEN + len(src)
    assert out[BMP_HEADER_LEN:] == src
    assert _parse(out)[0] == len(out)


def test_grayscale_bmp_palette():
    src = bytes(range(6))
    out = fmt_to_bmp(src, 3, 2, PixFormat.GRAYSCALE)
    fields = _parse(out)
    assert fields[7] == 8
    assert fields[2] == BMP_HEADER_LEN + 1024
    assert fields[0] == len(out)
    palette = out[BMP_HEADER_LEN:BMP_HEADER_LEN + 1024]
    assert palette[4 * 77:4 * 78] == bytes((77, 77, 77, 0))
    assert out[BMP_HEADER_LEN + 1024:] == src


def test_rgb565_bmp_matches_rgb888_conversion():
    src = bytes((x * 37) % 256 for x in range(3 * 2 * 2))
    out = fmt_to_bmp(src, 3, 2, PixFormat.RGB565)
    assert out[BMP_HEADER_LEN:] == fmt_to_rgb888(src, PixFormat.RGB565)
    assert len(out) == BMP_HEADER_LEN + 3 * 2 * 3


def test_rgb565_pixel_order():
    assert fmt_to_rgb888(b"\xf8\x00", PixFormat.RGB565) == b"\x00\x00\xf8"
    assert fmt_to_rgb888(b"\x00\x1f", PixFormat.RGB565) == b"\xf8\x00\x00"


def test_yuv422_bmp():
    src = bytes((60, 100, 180, 150))
    out = fmt_to_bmp(src, 2, 1, PixFormat.YUV422)
    r0, g0, b0 = yuv_to_rgb(60, 100, 150)
    r1, g1, b1 = yuv_to_rgb(180, 100, 150)
    assert out[BMP_HEADER_LEN:] == bytes((b0, g0, r0, b1, g1, r1))


def test_rgb888_of_grayscale_triples():
    assert fmt_to_rgb888(bytes((5, 9)), PixFormat.GRAYSCALE) == bytes((5, 5, 5, 9, 9, 9))


def test_rgb888_passthrough_and_yuv_length():
    data = bytes(range(9))
    assert fmt_to_rgb888(data, PixFormat.RGB888) == data
    assert len(fmt_to_rgb888(bytes(10), PixFormat.YUV422)) == 4 * 3


def test_jpeg_rejected():
    with pytest.raises(ConversionError):
        fmt_to_bmp(b"\xff\xd8\xff\xd9", 1, 1, PixFormat.JPEG)
    with pytest.raises(ConversionError):
        fmt_to_rgb888(b"\xff\xd8\xff\xd9", PixFormat.JPEG)


def test_short_buffer_rejected():
    with pytest.raises(ConversionError):
        fmt_to_bmp(bytes(5), 2, 2, PixFormat.RGB565)


def test_frame_to_bmp_matches():
    src = bytes(range(12))
    frame = Frame(src, 2, 2, PixFormat.RGB888)
    assert frame_to_bmp(frame) == fmt_to_bmp(src, 2, 2, PixFormat.RGB888)