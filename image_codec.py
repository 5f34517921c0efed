"""Pillow-backed image codec

Implements the codec boundary used by the orchestrator: decode the original,
fit it to the requested box, encode to the requested format and walk a
deterministic quality/downscale ladder until the size budget is met.
"""

import asyncio
import logging
from io import BytesIO
from typing import Dict, List, Optional, Protocol, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from models.asset import Asset, CompressedAsset
from models.errors import CodecError
from models.options import ValidatedOptions

logger = logging.getLogger("ImgSqueeze")

PIL_FORMATS = {
    "webp": "WEBP",
    "jpeg": "JPEG",
    "png": "PNG",
    "avif": "AVIF",
}
QUALITY_LADDER = [85, 75, 65, 55, 45, 35]
DOWNSCALE_FACTORS = [1.0, 0.9, 0.75, 0.6, 0.5]


class ImageCodec(Protocol):
    """Contract for compression backends driven by the orchestrator"""

    async def compress(self, asset: Asset, options: ValidatedOptions) -> CompressedAsset:
        """Compress asset according to options.

        Raises:
            CodecError: On undecodable input or an unsupported format/resize combination
        """
        ...


def supported_formats() -> List[str]:
    """Output formats the installed Pillow build can encode"""
    Image.init()
    return [name for name, pil_name in PIL_FORMATS.items() if pil_name in Image.SAVE]


def quality_levels(quality: float) -> List[int]:
    """Requested quality first, then the fixed ladder below it"""
    start = max(1, min(100, int(round(quality * 100))))
    return [start] + [q for q in QUALITY_LADDER if q < start]


def fit_to_box(im: Image.Image, resize: str, box: Tuple[int, int]) -> Image.Image:
    """Apply a resize mode against a max width/height box. Never enlarges."""
    max_w, max_h = box
    w, h = im.size
    if w <= max_w and h <= max_h:
        return im

    target = (min(w, max_w), min(h, max_h))
    if resize == "inside":
        scale = min(max_w / w, max_h / h)
        return im.resize((max(1, round(w * scale)), max(1, round(h * scale))), Image.Resampling.LANCZOS)
    if resize == "contain":
        # Letterbox into the box, keeping aspect ratio
        color = (0, 0, 0, 0) if im.mode in ("RGBA", "LA") else None
        return ImageOps.pad(im, target, method=Image.Resampling.LANCZOS, color=color)
    if resize == "cover":
        return ImageOps.fit(im, target, method=Image.Resampling.LANCZOS)
    if resize == "fill":
        return im.resize(target, Image.Resampling.LANCZOS)
    if resize == "outside":
        # Smallest size that still covers the box on both sides
        scale = max(max_w / w, max_h / h)
        if scale >= 1.0:
            return im
        return im.resize((max(1, round(w * scale)), max(1, round(h * scale))), Image.Resampling.LANCZOS)
    raise CodecError(f"Unsupported resize mode: {resize}")


def prepare_mode(im: Image.Image, fmt: str) -> Image.Image:
    """Convert to a mode the target encoder accepts"""
    if fmt == "jpeg":
        if im.mode in ("RGBA", "LA", "P"):
            # Create white background for transparency
            if im.mode == "P":
                im = im.convert("RGBA")
            background = Image.new("RGB", im.size, (255, 255, 255))
            background.paste(im, mask=im.split()[-1])
            return background
        if im.mode != "RGB":
            return im.convert("RGB")
        return im
    if im.mode not in ("RGB", "RGBA", "L", "LA"):
        return im.convert("RGBA" if "transparency" in im.info or im.mode == "P" else "RGB")
    return im


def encode(im: Image.Image, fmt: str, quality: int, progressive: bool) -> bytes:
    buf = BytesIO()
    if fmt == "webp":
        im.save(buf, format="WEBP", quality=quality, method=5)
    elif fmt == "jpeg":
        im.save(buf, format="JPEG", quality=quality, optimize=True, progressive=progressive)
    elif fmt == "png":
        # PNG is lossless; quality does not apply
        im.save(buf, format="PNG", optimize=True)
    elif fmt == "avif":
        im.save(buf, format="AVIF", quality=quality)
    else:
        raise CodecError(f"Unsupported target format: {fmt}")
    return buf.getvalue()


def compress_bytes(image_bytes: bytes, options: ValidatedOptions) -> Tuple[bytes, Dict[str, object]]:
    """Synchronous compression ladder.

    Returns the first encoding at or under options.max_bytes, or the smallest
    attempt when the budget cannot be met.
    """
    fmt = options.format
    if fmt not in supported_formats():
        raise CodecError(f"Output format '{fmt}' is not supported by this Pillow build")

    try:
        with Image.open(BytesIO(image_bytes)) as loaded:
            im = ImageOps.exif_transpose(loaded)
            im.load()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise CodecError(f"Cannot decode image: {e}") from e

    original_dimensions = im.size
    im = fit_to_box(im, options.resize, (options.max_width, options.max_height))
    im = prepare_mode(im, fmt)

    levels = quality_levels(options.quality) if fmt != "png" else [0]
    max_bytes = options.max_bytes
    smallest: Optional[Tuple[bytes, int, Tuple[int, int]]] = None

    for factor in DOWNSCALE_FACTORS:
        if factor < 1.0:
            new_size = (max(1, int(im.size[0] * factor)), max(1, int(im.size[1] * factor)))
            im_resized = im.resize(new_size, Image.Resampling.LANCZOS)
        else:
            im_resized = im

        for quality in levels:
            try:
                data = encode(im_resized, fmt, quality, options.progressive)
            except CodecError:
                raise
            except Exception as e:
                raise CodecError(f"Encoding to {fmt} failed: {e}") from e

            if smallest is None or len(data) < len(smallest[0]):
                smallest = (data, quality, im_resized.size)
            if len(data) <= max_bytes:
                logger.info(
                    f"Encoded {fmt}: {len(image_bytes)} -> {len(data)} bytes "
                    f"(quality={quality}, downscale={factor:.2f})"
                )
                return data, {
                    "quality": quality,
                    "original_dimensions": original_dimensions,
                    "final_dimensions": im_resized.size,
                    "within_budget": True,
                }

    data, quality, size = smallest
    logger.warning(
        f"Could not reach {max_bytes} bytes for {fmt}; smallest attempt {len(data)} bytes (quality={quality})"
    )
    return data, {
        "quality": quality,
        "original_dimensions": original_dimensions,
        "final_dimensions": size,
        "within_budget": False,
    }


class PillowCodec:
    """ImageCodec running the Pillow ladder in a worker thread"""

    async def compress(self, asset: Asset, options: ValidatedOptions) -> CompressedAsset:
        data, info = await asyncio.to_thread(compress_bytes, asset.data, options)
        width, height = info["final_dimensions"]
        return CompressedAsset(
            data=data,
            mime_type=options.mime_type,
            bytes_size=len(data),
            generation=asset.generation,
            source_name=asset.name,
            width=width,
            height=height,
        )
