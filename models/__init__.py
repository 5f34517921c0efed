"""Data models for ImgSqueeze MCP Server"""

from models.asset import Asset, CompressedAsset, OrchestratorState, PreviewHandle
from models.errors import (
    CodecError,
    ImgSqueezeError,
    InvalidAssetType,
    ResourceError,
    ValidationError,
)
from models.options import CompressionOptions, ValidatedOptions

__all__ = [
    "Asset",
    "CodecError",
    "CompressedAsset",
    "CompressionOptions",
    "ImgSqueezeError",
    "InvalidAssetType",
    "OrchestratorState",
    "PreviewHandle",
    "ResourceError",
    "ValidatedOptions",
    "ValidationError",
]
