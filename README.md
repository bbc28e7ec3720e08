# camconv

Pure-Python conversion of raw camera frame buffers into baseline JPEG and
BMP images. It has no third-party dependencies.

Source pixel formats are listed in `camconv.pixformat.PixFormat`:

- `RGB565`: two bytes per pixel, high byte first
- `RGB888`: three bytes per pixel
- `YUV422`: YUYV, two bytes per pixel
- `GRAYSCALE`: one byte per pixel
- `JPEG`: recognised as a format, but not accepted as input (see below)

`PixFormat.bytes_per_pixel()` gives the size of one pixel for the
uncompressed formats.

## Installing

```
pip install .
```

## Encoding to JPEG

```python
from camconv.pixformat import PixFormat
from camconv.to_jpg import fmt_to_jpg

gray = bytes(range(64)) * 64          # 64x64 grayscale gradient
jpeg = fmt_to_jpg(gray, 64, 64, PixFormat.GRAYSCALE, 80)
with open("out.jpg", "wb") as fh:
    fh.write(jpeg)
```

The quality is clamped to 1..100. Grayscale sources are encoded as
single-component JPEGs; all other formats are converted to RGB row by row
(`camconv.to_jpg.convert_line`) and encoded with H2V2 chroma subsampling.
`fmt_to_jpg` keeps at most `JPEG_BUFFER_LEN` (128 KiB) of output; anything
beyond that is cut off.

To stream the encoded data instead, use `fmt_to_jpg_cb`. Its callback is
called as `callback(index, data)` and returns how many bytes it accepted;
the running total is passed as the next `index`, and the final call carries
an empty chunk. The function returns the total.

```python
from camconv.to_jpg import fmt_to_jpg_cb

with open("out.jpg", "wb") as fh:
    size = fmt_to_jpg_cb(gray, 64, 64, PixFormat.GRAYSCALE, 80,
                         lambda index, data: fh.write(data))
```

### The encoder itself

`camconv.jpeg_encoder.JpegEncoder(write, width, height, channels, params)`
takes 1-, 3- or 4-channel input (for 4 channels only the first `width` bytes
of each row are used, as luminance). Feed it one scanline of
`width * channels` bytes at a time with `process_scanline`, then call
`finish`. `write` receives chunks of at most 512 bytes, followed by an empty
chunk at the end; returning `False` from it marks the output as failed.

`camconv.jpeg_encoder.encode(pixels, width, height, channels, params)` does
the same in one call and returns the JPEG bytes. `EncoderParams` holds
`quality` (default 85) and `subsampling`, one of `Subsampling.Y_ONLY`,
`H1V1`, `H2V1` or `H2V2` (default).

The tables and per-block steps the encoder uses (`compute_huffman_table`,
`compute_quant_table`, `forward_dct`, `quantize`, `rgb_to_ycc`, `rgb_to_y`,
`y_to_ycc`) are available in `camconv.jpeg_tables`.

## Converting to BMP

```python
from camconv.pixformat import PixFormat
from camconv.to_bmp import fmt_to_bmp

bmp = fmt_to_bmp(rgb565_bytes, 320, 240, PixFormat.RGB565)
```

Grayscale images become 8-bit bitmaps with a grey palette; every other
format becomes 24-bit BGR. Rows are stored top to bottom (negative height).
`bmp_header` builds the 54-byte header on its own.

`fmt_to_rgb888(src, fmt)` converts a raw buffer to packed 24-bit pixels in
B, G, R order, without a header; `RGB888` input is returned unchanged.

## Colour conversion

`camconv.yuv.yuv_to_rgb(y, u, v)` converts one YUV sample to an `(r, g, b)`
triple using fixed lookup tables.

## Frames

`camconv.pixformat.Frame` bundles a buffer with its width, height and
format. `frame_to_jpg`, `frame_to_jpg_cb` and `frame_to_bmp` take one
directly.

## Errors

Conversions that cannot be done raise `camconv.pixformat.ConversionError`:
a source buffer too short for the image, an odd width for YUV422, a failed
write, or a second call after the encoder finished. `JpegEncoder` and
`encode` raise `ValueError` for bad dimensions, channel counts, parameters,
or scanline lengths.

## What it does not do

There is no JPEG decoder. JPEG input to `fmt_to_bmp`, `frame_to_bmp` and
`fmt_to_rgb888` raises `ConversionError`. There is no command-line tool and
no camera capture; the package only converts buffers you already have.