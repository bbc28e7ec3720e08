"""Pixel formats, camera frames and the error raised by conversions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field


class ConversionError(Exception):
    """Raised when an image cannot be converted."""


class PixFormat(enum.Enum):
    """Pixel layouts a camera frame may carry."""

    RGB565 = enum.auto()
    YUV422 = enum.auto()
    GRAYSCALE = enum.auto()
    JPEG = enum.auto()
    RGB888 = enum.auto()

    def bytes_per_pixel(self) -> int:
        """Number of bytes one pixel takes in an uncompressed buffer."""
        try:
            return _BYTES_PER_PIXEL[self]
        except KeyError:
            raise ConversionError(
                f"{self.name} is compressed and has no fixed pixel size"
            ) from None


_BYTES_PER_PIXEL = {
    PixFormat.RGB565: 2,
    PixFormat.YUV422: 2,
    PixFormat.GRAYSCALE: 1,
    PixFormat.RGB888: 3,
}


@dataclass(frozen=True)
class Frame:
    """A captured image buffer together with its geometry and format."""

    buf: bytes = field(repr=False)
    width: int
    height: int
    format: PixFormat

    def __post_init__(self) -> None:
        object.__setattr__(self, "buf", bytes(self.buf))
        if self.width < 0 or self.height < 0:
            raise ValueError("frame dimensions must not be negative")

    @property
    def len(self) -> int:
        """Length of the buffer in bytes."""
        return len(self.buf)