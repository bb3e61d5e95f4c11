"""
PNG Compressor

Lossy palette quantization for uploaded PNGs. Compression is optional:
any failure, or a result that isn't smaller, keeps the original bytes.
"""

import logging
from io import BytesIO
from dataclasses import dataclass

from PIL import Image

logger = logging.getLogger(__name__)


@dataclass
class CompressionResult:
    """Result of compressing an image."""
    data: bytes
    original_size: int
    compressed_size: int
    compressed: bool

    @property
    def ratio_percent(self) -> float:
        if self.original_size == 0:
            return 0.0
        return (1 - self.compressed_size / self.original_size) * 100


def compress_png(data: bytes, colors: int = 256) -> CompressionResult:
    """
    Quantize a PNG to a palette of at most ``colors`` colors.

    Returns the original bytes when compression fails or doesn't help.
    """
    original_size = len(data)
    unchanged = CompressionResult(data, original_size, original_size, False)

    try:
        img = Image.open(BytesIO(data))
        img.load()

        if img.mode == "P":
            # Already palette-based
            img = img.convert("RGBA")

        # MEDIANCUT doesn't support alpha
        if img.mode == "RGBA":
            quantized = img.quantize(colors=colors, method=Image.Quantize.FASTOCTREE)
        else:
            quantized = img.convert("RGB").quantize(colors=colors)

        output = BytesIO()
        quantized.save(output, format="PNG", optimize=True)
        compressed = output.getvalue()
    except Exception as e:
        logger.warning(f"[Upload] PNG compression failed, using original file: {e}")
        return unchanged

    if len(compressed) >= original_size:
        logger.debug("[Upload] PNG compression did not reduce size, keeping original")
        return unchanged

    return CompressionResult(compressed, original_size, len(compressed), True)
