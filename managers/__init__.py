"""Manager classes for ImgSqueeze MCP Server"""

from managers.asset_ingestion import AssetIngestion
from managers.compression_orchestrator import CompressionOrchestrator
from managers.defaults_manager import DefaultsManager
from managers.download_emitter import DirectorySaveTarget, DownloadEmitter
from managers.options_validator import OptionsValidator
from managers.preview_registry import PreviewRegistry

__all__ = [
    "AssetIngestion",
    "CompressionOrchestrator",
    "DefaultsManager",
    "DirectorySaveTarget",
    "DownloadEmitter",
    "OptionsValidator",
    "PreviewRegistry",
]
