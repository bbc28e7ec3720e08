"""Convert raw camera frames to baseline JPEG and BMP images."""

__version__ = "0.1.0"