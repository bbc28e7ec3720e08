"""Baseline JPEG encoder that consumes an image one scanline at a time."""

from __future__ import annotations

import enum
import struct
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from functools import lru_cache

from camconv.jpeg_tables import (
    AC_CHROMA_BITS,
    AC_CHROMA_VALUES,
    AC_LUM_BITS,
    AC_LUM_VALUES,
    DC_CHROMA_BITS,
    DC_CHROMA_VALUES,
    DC_LUM_BITS,
    DC_LUM_VALUES,
    STD_CHROMA_QUANT,
    STD_LUM_QUANT,
    compute_huffman_table,
    compute_quant_table,
    forward_dct,
    quantize,
    rgb_to_y,
    rgb_to_ycc,
    y_to_ycc,
)
from camconv.pixformat import ConversionError

_OUT_BUF_SIZE = 512

_M_SOF0 = 0xC0
_M_DHT = 0xC4
_M_SOI = 0xD8
_M_EOI = 0xD9
_M_SOS = 0xDA
_M_DQT = 0xDB
_M_APP0 = 0xE0

# Huffman table slots: 0 = DC luma, 1 = DC chroma, 2 = AC luma, 3 = AC chroma.
_HUFFMAN_SPECS = (
    (DC_LUM_BITS, DC_LUM_VALUES),
    (DC_CHROMA_BITS, DC_CHROMA_VALUES),
    (AC_LUM_BITS, AC_LUM_VALUES),
    (AC_CHROMA_BITS, AC_CHROMA_VALUES),
)
_HUFFMAN = tuple(compute_huffman_table(bits, values) for bits, values in _HUFFMAN_SPECS)


class Subsampling(enum.IntEnum):
    """Chroma subsampling modes."""

    Y_ONLY = 0
    H1V1 = 1
    H2V1 = 2
    H2V2 = 3


# (per-component (h, v) sampling factors, MCU width, MCU height)
_LAYOUTS = {
    Subsampling.Y_ONLY: (((1, 1),), 8, 8),
    Subsampling.H1V1: (((1, 1), (1, 1), (1, 1)), 8, 8),
    Subsampling.H2V1: (((2, 1), (1, 1), (1, 1)), 16, 8),
    Subsampling.H2V2: (((2, 2), (1, 1), (1, 1)), 16, 16),
}


@dataclass
class EncoderParams:
    """Compression settings: quality 1..100 and a chroma subsampling mode."""

    quality: int = 85
    subsampling: Subsampling = Subsampling.H2V2

    def check(self) -> bool:
        """Whether the settings are usable."""
        if isinstance(self.quality, bool) or not isinstance(self.quality, int):
            return False
        if not 1 <= self.quality <= 100:
            return False
        try:
            Subsampling(self.subsampling)
        except ValueError:
            return False
        return True


@lru_cache(maxsize=8)
def _quant_tables(quality: int) -> tuple[list[int], list[int]]:
    return (
        compute_quant_table(quality, STD_LUM_QUANT),
        compute_quant_table(quality, STD_CHROMA_QUANT),
    )


def _magnitude_bits(value: int, nbits: int) -> int:
    if value < 0:
        value -= 1
    return value & ((1 << nbits) - 1)


class JpegEncoder:
    """Streams a baseline JPEG to ``write`` as scanlines are supplied.

    ``write`` receives chunks of at most 512 bytes and, once the image is
    finished, an empty chunk.  A return value of ``False`` marks the write
    as failed; no further data is written after that.
    """

    def __init__(
        self,
        write: Callable[[bytes], object],
        width: int,
        height: int,
        channels: int,
        params: EncoderParams | None = None,
    ) -> None:
        params = EncoderParams() if params is None else params
        if write is None or width < 1 or height < 1:
            raise ValueError("a writer and positive dimensions are required")
        if channels not in (1, 3, 4):
            raise ValueError(f"channels must be 1, 3 or 4, got {channels}")
        if not params.check():
            raise ValueError(f"invalid encoder parameters: {params}")

        self._write = write
        self._ok = True
        self._finished = False
        self._out = bytearray()
        self._bit_buffer = 0
        self._bits_in = 0

        self._subsampling = Subsampling(params.subsampling)
        self._sampling, self._mcu_x, self._mcu_y = _LAYOUTS[self._subsampling]
        self._components = len(self._sampling)
        self._width = width
        self._height = height
        self._channels = channels
        self._width_mcu = (width + self._mcu_x - 1) & ~(self._mcu_x - 1)
        self._mcus_per_row = self._width_mcu // self._mcu_x
        self._mcu_lines = [b""] * self._mcu_y
        self._mcu_y_ofs = 0
        self._last_dc = [0, 0, 0]
        self._quant = _quant_tables(params.quality)

        self._emit_headers()
        self._drain()
        if not self._ok:
            raise ConversionError("writing the JPEG header failed")

    # Output handling

    def _send(self, data: bytes) -> None:
        if self._ok and self._write(bytes(data)) is False:
            self._ok = False

    def _drain(self) -> None:
        while len(self._out) >= _OUT_BUF_SIZE:
            self._send(self._out[:_OUT_BUF_SIZE])
            del self._out[:_OUT_BUF_SIZE]

    def _flush(self) -> None:
        self._drain()
        if self._out:
            self._send(self._out)
            self._out.clear()

    def _put_bits(self, bits: int, length: int) -> None:
        self._bits_in += length
        self._bit_buffer = (self._bit_buffer | (bits << (24 - self._bits_in))) & 0xFFFFFFFF
        while self._bits_in >= 8:
            byte = (self._bit_buffer >> 16) & 0xFF
            self._out.append(byte)
            if byte == 0xFF:
                self._out.append(0)
            self._bit_buffer = (self._bit_buffer << 8) & 0xFFFFFFFF
            self._bits_in -= 8

    def _segment(self, marker: int, payload: bytes) -> None:
        self._out += bytes((0xFF, marker)) + struct.pack(">H", len(payload) + 2) + payload

    # Headers

    def _emit_headers(self) -> None:
        self._out += bytes((0xFF, _M_SOI))
        self._segment(_M_APP0, b"JFIF\x00" + bytes((1, 1, 0)) + struct.pack(">HH", 1, 1) + bytes(2))
        for index in range(2 if self._components == 3 else 1):
            self._segment(_M_DQT, bytes((index,)) + bytes(self._quant[index]))

        sof = bytearray((8,)) + struct.pack(">HH", self._height, self._width)
        sof.append(self._components)
        for index, (h, v) in enumerate(self._sampling):
            sof += bytes((index + 1, (h << 4) + v, int(index > 0)))
        self._segment(_M_SOF0, bytes(sof))

        tables = [(0, 0, False), (2, 0, True)]
        if self._components == 3:
            tables += [(1, 1, False), (3, 1, True)]
        for slot, index, is_ac in tables:
            bits, values = _HUFFMAN_SPECS[slot]
            count = sum(bits[1:17])
            payload = bytes((index + (int(is_ac) << 4),)) + bytes(bits[1:17]) + bytes(values[:count])
            self._segment(_M_DHT, payload)

        sos = bytearray((self._components,))
        for index in range(self._components):
            sos += bytes((index + 1, 0x00 if index == 0 else 0x11))
        sos += bytes((0, 63, 0))
        self._segment(_M_SOS, bytes(sos))

    # Block extraction

    def _block_grey(self, x: int) -> list[int]:
        start = x * 8
        return [v - 128 for row in self._mcu_lines[:8] for v in row[start:start + 8]]

    def _block_8_8(self, x: int, y: int, c: int) -> list[int]:
        start = x * 24 + c
        rows = self._mcu_lines[y * 8:y * 8 + 8]
        return [v - 128 for row in rows for v in row[start:start + 24:3]]

    def _block_16_8(self, x: int, c: int) -> list[int]:
        start = x * 48 + c
        lines = self._mcu_lines
        block = []
        for pair, (top, bottom) in enumerate(zip(lines[0::2], lines[1::2])):
            bias = (0, 2) if pair % 2 == 0 else (2, 0)
            sums = [p + q for p, q in zip(top[start:start + 48:3], bottom[start:start + 48:3])]
            for k, (left, right) in enumerate(zip(sums[0::2], sums[1::2])):
                block.append(((left + right + bias[k % 2]) >> 2) - 128)
        return block

    def _block_16_8_8(self, x: int, c: int) -> list[int]:
        start = x * 48 + c
        block = []
        for row in self._mcu_lines[:8]:
            samples = row[start:start + 48:3]
            block += [((p + q) >> 1) - 128 for p, q in zip(samples[0::2], samples[1::2])]
        return block

    # Coding

    def _code_block(self, block: Sequence[int], component: int) -> None:
        coefficients = quantize(forward_dct(block), self._quant[int(component > 0)])
        self._code_coefficients(coefficients, component)

    def _code_coefficients(self, coefficients: Sequence[int], component: int) -> None:
        dc_codes, dc_sizes = _HUFFMAN[0 if component == 0 else 1]
        ac_codes, ac_sizes = _HUFFMAN[2 if component == 0 else 3]

        diff = coefficients[0] - self._last_dc[component]
        self._last_dc[component] = coefficients[0]
        nbits = abs(diff).bit_length()
        self._put_bits(dc_codes[nbits], dc_sizes[nbits])
        if nbits:
            self._put_bits(_magnitude_bits(diff, nbits), nbits)

        run = 0
        for value in coefficients[1:]:
            if value == 0:
                run += 1
                continue
            while run >= 16:
                self._put_bits(ac_codes[0xF0], ac_sizes[0xF0])
                run -= 16
            nbits = abs(value).bit_length()
            symbol = (run << 4) + nbits
            self._put_bits(ac_codes[symbol], ac_sizes[symbol])
            self._put_bits(_magnitude_bits(value, nbits), nbits)
            run = 0
        if run:
            self._put_bits(ac_codes[0], ac_sizes[0])

    def _process_mcu_row(self) -> None:
        sub = self._subsampling
        for i in range(self._mcus_per_row):
            if sub is Subsampling.Y_ONLY:
                self._code_block(self._block_grey(i), 0)
            elif sub is Subsampling.H1V1:
                for c in range(3):
                    self._code_block(self._block_8_8(i, 0, c), c)
            elif sub is Subsampling.H2V1:
                self._code_block(self._block_8_8(i * 2, 0, 0), 0)
                self._code_block(self._block_8_8(i * 2 + 1, 0, 0), 0)
                self._code_block(self._block_16_8_8(i, 1), 1)
                self._code_block(self._block_16_8_8(i, 2), 2)
            else:
                self._code_block(self._block_8_8(i * 2, 0, 0), 0)
                self._code_block(self._block_8_8(i * 2 + 1, 0, 0), 0)
                self._code_block(self._block_8_8(i * 2, 1, 0), 0)
                self._code_block(self._block_8_8(i * 2 + 1, 1, 0), 0)
                self._code_block(self._block_16_8(i, 1), 1)
                self._code_block(self._block_16_8(i, 2), 2)
            self._drain()

    def _load_mcu(self, line: bytes) -> None:
        if self._components == 1:
            converted = rgb_to_y(line) if self._channels == 3 else line[:self._width]
        else:
            converted = rgb_to_ycc(line) if self._channels == 3 else y_to_ycc(line[:self._width])
        pad = converted[-self._components:] * (self._width_mcu - self._width)
        self._mcu_lines[self._mcu_y_ofs] = converted + pad

        self._mcu_y_ofs += 1
        if self._mcu_y_ofs == self._mcu_y:
            self._process_mcu_row()
            self._mcu_y_ofs = 0

    # Public interface

    def process_scanline(self, line: bytes) -> None:
        """Encode one row of ``width * channels`` bytes."""
        if self._finished:
            raise ConversionError("the encoder has already finished")
        line = bytes(line)
        expected = self._width * self._channels
        if len(line) != expected:
            raise ValueError(f"scanline must be {expected} bytes, got {len(line)}")
        if self._ok:
            self._load_mcu(line)
        if not self._ok:
            raise ConversionError("writing JPEG data failed")

    def finish(self) -> None:
        """Pad the last MCU row, write the end marker and flush."""
        if self._finished:
            raise ConversionError("the encoder has already finished")
        if not self._ok:
            raise ConversionError("writing JPEG data failed")
        if self._mcu_y_ofs:
            last = self._mcu_lines[self._mcu_y_ofs - 1]
            for index in range(self._mcu_y_ofs, self._mcu_y):
                self._mcu_lines[index] = last
            self._process_mcu_row()
        self._put_bits(0x7F, 7)
        self._out += bytes((0xFF, _M_EOI))
        self._flush()
        self._send(b"")
        self._finished = True
        if not self._ok:
            raise ConversionError("writing JPEG data failed")


def encode(
    pixels: bytes,
    width: int,
    height: int,
    channels: int,
    params: EncoderParams | None = None,
) -> bytes:
    """Encode a packed image of ``height`` rows into JPEG bytes."""
    pixels = bytes(pixels)
    stride = width * channels
    if len(pixels) < stride * height:
        raise ValueError("pixel buffer is smaller than the image it describes")
    chunks: list[bytes] = []
    encoder = JpegEncoder(chunks.append, width, height, channels, params)
    for row in range(height):
        encoder.process_scanline(pixels[row * stride:(row + 1) * stride])
    encoder.finish()
    return b"".join(chunks)