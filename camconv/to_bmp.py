"""Conversion of raw camera images to BMP files and packed 24-bit pixels."""

from __future__ import annotations

import struct

from camconv.pixformat import ConversionError, Frame, PixFormat
from camconv.yuv import yuv_to_rgb

BMP_HEADER_LEN = 54
_PIXELS_PER_METER = 0x0B13  # 72 DPI
_DIB_HEADER_SIZE = 40
_GRAY_PALETTE = b"".join(bytes((i, i, i, 0)) for i in range(256))


def bmp_header(
    width: int, height: int, bits_per_pixel: int, palette_size: int = 0
) -> bytes:
    """Build the 54-byte header of a top-down, uncompressed BMP."""
    image_size = width * height * bits_per_pixel // 8
    return b"BM" + struct.pack(
        "<IIIIiiHHIIIIII",
        image_size + BMP_HEADER_LEN + palette_size,
        0,
        BMP_HEADER_LEN + palette_size,
        _DIB_HEADER_SIZE,
        width,
        -height,
        1,
        bits_per_pixel,
        0,
        image_size,
        _PIXELS_PER_METER,
        _PIXELS_PER_METER,
        0,
        0,
    )


def _rgb565_to_bgr(data: bytes) -> bytes:
    out = bytearray()
    for high, low in zip(data[0::2], data[1::2]):
        out += bytes((
            (low & 0x1F) << 3,
            (high & 0x07) << 5 | (low & 0xE0) >> 3,
            high & 0xF8,
        ))
    return bytes(out)


def _yuv422_to_bgr(data: bytes) -> bytes:
    out = bytearray()
    for y0, u, y1, v in zip(data[0::4], data[1::4], data[2::4], data[3::4]):
        for y in (y0, y1):
            r, g, b = yuv_to_rgb(y, u, v)
            out += bytes((b, g, r))
    return bytes(out)


def _reject_jpeg(fmt: PixFormat) -> None:
    if fmt is PixFormat.JPEG:
        raise ConversionError("JPEG input cannot be decoded")


def fmt_to_bmp(src: bytes, width: int, height: int, fmt: PixFormat) -> bytes:
    """Wrap an image in a BMP file: 8-bit with a grey palette, else 24-bit."""
    _reject_jpeg(fmt)
    if width < 0 or height < 0:
        raise ConversionError("image dimensions must not be negative")
    src = bytes(src)
    pix_count = width * height
    needed = pix_count * fmt.bytes_per_pixel()
    if len(src) < needed:
        raise ConversionError(f"source buffer holds {len(src)} bytes, {needed} needed")

    if fmt is PixFormat.GRAYSCALE:
        header = bmp_header(width, height, 8, len(_GRAY_PALETTE))
        return header + _GRAY_PALETTE + src[:pix_count]

    if fmt is PixFormat.RGB888:
        pixels = src[:needed]
    elif fmt is PixFormat.RGB565:
        pixels = _rgb565_to_bgr(src[:needed])
    else:
        pixels = _yuv422_to_bgr(src[:(pix_count // 2) * 4])
        pixels += bytes(pix_count * 3 - len(pixels))
    return bmp_header(width, height, 24) + pixels


def frame_to_bmp(frame: Frame) -> bytes:
    """Wrap a camera frame in a BMP file."""
    return fmt_to_bmp(frame.buf, frame.width, frame.height, frame.format)


def fmt_to_rgb888(src: bytes, fmt: PixFormat) -> bytes:
    """Convert a raw buffer to packed 24-bit pixels in B, G, R order."""
    _reject_jpeg(fmt)
    src = bytes(src)
    if fmt is PixFormat.RGB888:
        return src
    if fmt is PixFormat.RGB565:
        return _rgb565_to_bgr(src[:(len(src) // 2) * 2])
    if fmt is PixFormat.GRAYSCALE:
        return bytes(b for value in src for b in (value, value, value))
    pairs = len(src) // 2 // 2
    return _yuv422_to_bgr(src[:pairs * 4])