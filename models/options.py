"""Compression option models"""

from dataclasses import asdict, dataclass
from typing import Any, Dict

OUTPUT_FORMATS = ("webp", "jpeg", "png", "avif")
RESIZE_MODES = ("contain", "cover", "fill", "inside", "outside")

# (min, max) inclusive
NUMERIC_RANGES = {
    "max_size_mb": (0.1, 50.0),
    "max_width": (100, 4000),
    "max_height": (100, 4000),
    "quality": (0.1, 1.0),
}

HARDCODED_DEFAULTS: Dict[str, Any] = {
    "max_size_mb": 1.0,
    "format": "webp",
    "resize": "contain",
    "max_width": 1920,
    "max_height": 1080,
    "quality": 0.8,
    "progressive": False,
}


@dataclass
class CompressionOptions:
    """User-editable compression parameters (not yet validated)"""
    max_size_mb: float = 1.0
    format: str = "webp"
    resize: str = "contain"
    max_width: int = 1920
    max_height: int = 1080
    quality: float = 0.8
    progressive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ValidatedOptions:
    """Options that passed OptionsValidator; only the validator builds these"""
    max_size_mb: float
    format: str
    resize: str
    max_width: int
    max_height: int
    quality: float
    progressive: bool

    @property
    def mime_type(self) -> str:
        return f"image/{self.format}"

    @property
    def max_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
