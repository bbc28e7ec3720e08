import pytest

from camconv.pixformat import ConversionError, Frame, PixFormat


@pytest.mark.parametrize(
    "fmt, expected",
    [
        (PixFormat.RGB565, 2),
        (PixFormat.YUV422, 2),
        (PixFormat.GRAYSCALE, 1),
        (PixFormat.RGB888, 3),
    ],
)
def test_bytes_per_pixel(fmt, expected):
    assert fmt.bytes_per_pixel() == expected


def test_jpeg_has_no_pixel_size():
    with pytest.raises(ConversionError):
        PixFormat.JPEG.bytes_per_pixel()


def test_frame_len_matches_buffer():
    frame = Frame(bytes(12), 2, 2, PixFormat.RGB888)
    assert frame.len == 12


def test_frame_copies_mutable_buffer():
    data = bytearray(b"\x01\x02\x03\x04")
    frame = Frame(data, 2, 2, PixFormat.GRAYSCALE)
    data[0] = 9
    assert frame.buf == b"\x01\x02\x03\x04"


def test_frame_rejects_negative_size():
    with pytest.raises(ValueError):
        Frame(b"", -1, 4, PixFormat.GRAYSCALE)