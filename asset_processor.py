"""Image helpers for size reporting, metrics and preview thumbnails"""

import base64
import logging
from decimal import ROUND_HALF_UP, Decimal
from io import BytesIO
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger("ImgSqueeze")

SIZE_UNITS = ("Bytes", "KB", "MB", "GB")
SIZE_BASE = 1024


def round_half_up(value: float, places: int) -> float:
    """Round to places decimals; exact halves go away from zero"""
    quantum = Decimal(1).scaleb(-places)
    rounded = float(Decimal(abs(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    return -rounded if value < 0 else rounded


def format_file_size(bytes_size: int) -> str:
    """Human-readable size: 0 -> '0 Bytes', 1536 -> '1.5 KB', 1048576 -> '1 MB'"""
    if bytes_size <= 0:
        return "0 Bytes"

    index = 0
    while index < len(SIZE_UNITS) - 1 and bytes_size >= SIZE_BASE ** (index + 1):
        index += 1

    value = round_half_up(bytes_size / SIZE_BASE ** index, 2)
    # Trailing zeros dropped: 1.50 -> 1.5, 1.00 -> 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[index]}"


def compression_ratio(original_size: int, compressed_size: Optional[int]) -> float:
    """Percentage saved, rounded to 1 decimal. Negative when the output grew."""
    if compressed_size is None or original_size == 0:
        return 0.0
    return round_half_up((1 - compressed_size / original_size) * 100, 1)


def image_dimensions(image_bytes: bytes) -> Tuple[Optional[int], Optional[int]]:
    """Pixel size of an encoded image, or (None, None) when it cannot be read"""
    try:
        with Image.open(BytesIO(image_bytes)) as img:
            return img.size
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Could not read image dimensions: {e}")
        return None, None


def create_thumbnail(
    image_bytes: bytes,
    max_dim: int = 512,
    quality: int = 70,
    format: str = "WEBP"
) -> bytes:
    """Create a downscaled thumbnail for inline previews"""
    with Image.open(BytesIO(image_bytes)) as loaded:
        img = ImageOps.exif_transpose(loaded)
        if img.mode not in ("RGB", "RGBA", "L", "LA"):
            img = img.convert("RGBA" if "transparency" in img.info else "RGB")

        width, height = img.size
        if width > max_dim or height > max_dim:
            scale = max_dim / max(width, height)
            new_size = (max(1, int(width * scale)), max(1, int(height * scale)))
            img = img.resize(new_size, Image.Resampling.LANCZOS)

        output = BytesIO()
        img.save(output, format=format, quality=quality)
        return output.getvalue()


def decode_base64_payload(payload: str) -> bytes:
    """Decode plain base64 or a data: URI into raw bytes"""
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    return base64.b64decode(payload, validate=True)
