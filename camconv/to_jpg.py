"""Conversion of raw camera images to JPEG."""

from __future__ import annotations

from collections.abc import Callable

from camconv.jpeg_encoder import EncoderParams, JpegEncoder, Subsampling
from camconv.pixformat import ConversionError, Frame, PixFormat
from camconv.yuv import yuv_to_rgb

# Size of the in-memory output buffer; longer JPEG data is cut off.
JPEG_BUFFER_LEN = 128 * 1024


def convert_line(src: bytes, fmt: PixFormat, width: int, line: int) -> bytes:
    """Return row ``line`` of ``src`` in the layout the encoder expects.

    Greyscale rows are returned as they are; every other format becomes
    packed R, G, B triples.
    """
    bpp = fmt.bytes_per_pixel()
    if fmt is PixFormat.YUV422 and width % 2:
        raise ConversionError("YUV422 rows must hold an even number of pixels")
    stride = width * bpp
    start = line * stride
    row = bytes(src[start:start + stride])
    if line < 0 or len(row) != stride:
        raise ConversionError(f"source buffer holds no complete row {line}")

    if fmt is PixFormat.GRAYSCALE:
        return row
    if fmt is PixFormat.RGB888:
        out = bytearray(row)
        out[0::3] = row[2::3]
        out[2::3] = row[0::3]
        return bytes(out)
    out = bytearray()
    if fmt is PixFormat.RGB565:
        for high, low in zip(row[0::2], row[1::2]):
            out += bytes((
                high & 0xF8,
                (high & 0x07) << 5 | (low & 0xE0) >> 3,
                (low & 0x1F) << 3,
            ))
    else:
        for y0, u, y1, v in zip(row[0::4], row[1::4], row[2::4], row[3::4]):
            out += bytes(yuv_to_rgb(y0, u, v))
            out += bytes(yuv_to_rgb(y1, u, v))
    return bytes(out)


def _convert_image(
    src: bytes,
    width: int,
    height: int,
    fmt: PixFormat,
    quality: int,
    write: Callable[[bytes], object],
) -> None:
    if fmt is PixFormat.GRAYSCALE:
        channels, subsampling = 1, Subsampling.Y_ONLY
    else:
        channels, subsampling = 3, Subsampling.H2V2
    quality = min(max(quality, 1), 100)
    params = EncoderParams(quality=quality, subsampling=subsampling)

    try:
        encoder = JpegEncoder(write, width, height, channels, params)
    except ValueError as exc:
        raise ConversionError(f"JPEG encoder init failed: {exc}") from exc

    src = bytes(src)
    for row in range(height):
        encoder.process_scanline(convert_line(src, fmt, width, row))
    encoder.finish()


def fmt_to_jpg_cb(
    src: bytes,
    width: int,
    height: int,
    fmt: PixFormat,
    quality: int,
    callback: Callable[[int, bytes], int],
) -> int:
    """Encode an image, handing the JPEG data to ``callback`` in chunks.

    ``callback(index, data)`` returns how many bytes it took; the sum of
    those counts is the index of the next call and the return value.
    The last call carries an empty chunk.
    """
    index = 0

    def write(data: bytes) -> bool:
        nonlocal index
        index += callback(index, data)
        return True

    _convert_image(src, width, height, fmt, quality, write)
    return index


def fmt_to_jpg(
    src: bytes, width: int, height: int, fmt: PixFormat, quality: int
) -> bytes:
    """Encode an image to JPEG bytes, keeping at most ``JPEG_BUFFER_LEN``."""
    buffer = bytearray()

    def write(data: bytes) -> bool:
        room = JPEG_BUFFER_LEN - len(buffer)
        buffer.extend(data[:room])
        return True

    _convert_image(src, width, height, fmt, quality, write)
    return bytes(buffer)


def frame_to_jpg(frame: Frame, quality: int) -> bytes:
    """Encode a camera frame to JPEG bytes."""
    return fmt_to_jpg(frame.buf, frame.width, frame.height, frame.format, quality)


def frame_to_jpg_cb(
    frame: Frame, quality: int, callback: Callable[[int, bytes], int]
) -> int:
    """Encode a camera frame, handing the JPEG data to ``callback``."""
    return fmt_to_jpg_cb(
        frame.buf, frame.width, frame.height, frame.format, quality, callback
    )