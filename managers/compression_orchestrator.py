"""Compression orchestrator: asset lifecycle and single-flight codec invocation

State machine::

    Idle --select--> Ready --start--> Compressing --ok--> Completed
                       ^                   |
                       |                   +--error--> Failed --start--> Compressing
                       +------ select (from any state) ------+

Every asynchronous completion is checked against the generation id of the
asset that is live when it arrives. A result computed for an asset that has
since been replaced is dropped; the pending codec call is never cancelled.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from asset_processor import compression_ratio, format_file_size
from image_codec import ImageCodec
from managers.asset_ingestion import AssetIngestion
from managers.download_emitter import DownloadEmitter, artifact_name_for
from managers.options_validator import OptionsInput, OptionsValidator
from managers.preview_registry import ORIGINAL_SLOT, RESULT_SLOT, PreviewRegistry
from models.asset import Asset, CompressedAsset, OrchestratorState, PreviewHandle
from models.errors import CodecError, ImgSqueezeError, ResourceError
from models.options import CompressionOptions, ValidatedOptions

logger = logging.getLogger("ImgSqueeze")

STARTABLE_STATES = (OrchestratorState.READY, OrchestratorState.FAILED)


class CompressionOrchestrator:
    """Owns the live asset, its compression result and their previews"""

    def __init__(
        self,
        codec: ImageCodec,
        previews: Optional[PreviewRegistry] = None,
        ingestion: Optional[AssetIngestion] = None,
        validator: Optional[OptionsValidator] = None,
    ):
        self.codec = codec
        self.previews = previews or PreviewRegistry()
        self.ingestion = ingestion or AssetIngestion()
        self.validator = validator or OptionsValidator()
        self._state = OrchestratorState.IDLE
        self._asset: Optional[Asset] = None
        self._result: Optional[CompressedAsset] = None
        self._error: Optional[ImgSqueezeError] = None
        self._options: Optional[ValidatedOptions] = None
        self._original_preview: Optional[PreviewHandle] = None
        self._result_preview: Optional[PreviewHandle] = None
        self.codec_calls = 0

    # Read-only view

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def asset(self) -> Optional[Asset]:
        return self._asset

    @property
    def result(self) -> Optional[CompressedAsset]:
        return self._result

    @property
    def error(self) -> Optional[ImgSqueezeError]:
        return self._error

    @property
    def options(self) -> Optional[ValidatedOptions]:
        return self._options

    @property
    def original_preview(self) -> Optional[PreviewHandle]:
        return self._original_preview

    @property
    def result_preview(self) -> Optional[PreviewHandle]:
        return self._result_preview

    @property
    def current_generation(self) -> Optional[int]:
        return self._asset.generation if self._asset else None

    @property
    def compression_ratio(self) -> float:
        if self._asset is None or self._result is None:
            return 0.0
        return compression_ratio(self._asset.bytes_size, self._result.bytes_size)

    # Transitions

    def ingest(self, raw_bytes: bytes, mime_type: str, name: str) -> Asset:
        """Ingest an upload and make it the live asset.

        A rejected upload raises InvalidAssetType before any state changes.
        """
        asset = self.ingestion.ingest(raw_bytes, mime_type, name)
        self.select_asset(asset)
        return asset

    def select_asset(self, asset: Asset):
        """Any state -> Ready. Drops any result or error of the previous asset."""
        if self._asset is not None and asset.generation <= self._asset.generation:
            raise ValueError(
                f"Asset generation {asset.generation} is not newer than live generation {self._asset.generation}"
            )

        # Registry revokes the previous original handle before allocating this one
        self._original_preview = self.previews.create(asset, ORIGINAL_SLOT)
        self._clear_result()
        previous = self._state
        self._asset = asset
        self._state = OrchestratorState.READY
        logger.info(f"Selected '{asset.name}' (generation {asset.generation}): {previous.value} -> Ready")

    async def start_compression(self, options: Optional[OptionsInput] = None) -> Optional[OrchestratorState]:
        """Run one compression pass for the live asset.

        Ignored (returns None) unless the orchestrator is Ready or Failed, so a
        second call while Compressing never issues a second codec call.
        Raises ValidationError before any state change if options are invalid.
        Returns the state after the codec call settles.
        """
        if self._state is OrchestratorState.COMPRESSING:
            logger.info(f"Compression already in flight for generation {self.current_generation}; ignoring request")
            return None
        if self._state not in STARTABLE_STATES:
            logger.warning(f"Cannot start compression from state {self._state.value}")
            return None

        if options is None:
            options = self._options or CompressionOptions()
        validated = self.validator.validate(options)

        asset = self._asset
        generation = asset.generation
        self._options = validated
        self._error = None
        self._state = OrchestratorState.COMPRESSING
        self.codec_calls += 1
        logger.info(
            f"Compressing '{asset.name}' (generation {generation}) to {validated.format} "
            f"quality={validated.quality} max={validated.max_size_mb}MB "
            f"{validated.max_width}x{validated.max_height} resize={validated.resize}"
        )

        try:
            result = await self.codec.compress(asset, validated)
        except asyncio.CancelledError:
            self.compression_failed(CodecError("Compression was cancelled"), generation)
            raise
        except CodecError as e:
            self.compression_failed(e, generation)
        except Exception as e:
            logger.exception(f"Codec raised an unexpected error for generation {generation}")
            self.compression_failed(CodecError(f"Compression failed: {e}"), generation)
        else:
            if isinstance(result, CompressedAsset):
                self.compression_succeeded(result)
            else:
                self.compression_failed(CodecError(f"Codec returned {type(result).__name__}"), generation)
        return self._state

    def compression_succeeded(self, result: CompressedAsset):
        """Codec completion. Dropped when the result belongs to a replaced asset."""
        if not self._is_current(result.generation, "result"):
            return

        expected = self._options.mime_type if self._options else None
        if expected and result.mime_type != expected:
            self.compression_failed(
                CodecError(f"Codec returned {result.mime_type}, expected {expected}"),
                result.generation,
            )
            return

        try:
            self._result_preview = self.previews.create(result, RESULT_SLOT)
        except ResourceError as e:
            self.compression_failed(e, result.generation)
            return
        self._result = result
        self._state = OrchestratorState.COMPLETED
        logger.info(
            f"Compressed '{self._asset.name}' (generation {result.generation}): "
            f"{format_file_size(self._asset.bytes_size)} -> {format_file_size(result.bytes_size)} "
            f"({self.compression_ratio}% smaller)"
        )

    def compression_failed(self, error: Exception, generation: int):
        """Codec failure. The asset is kept so the user can retry."""
        if not self._is_current(generation, "failure"):
            return
        if not isinstance(error, ImgSqueezeError):
            error = CodecError(str(error))
        self._error = error
        self._state = OrchestratorState.FAILED
        logger.error(f"Compression failed for generation {generation}: {error}")

    def download(self, emitter: DownloadEmitter) -> str:
        """Hand the live result to a DownloadEmitter; returns the artifact name"""
        if self._result is None:
            raise ResourceError("No compressed image to download")
        emitter.emit(self._result)
        return artifact_name_for(self._result)

    def close(self):
        """Teardown: revoke every preview and return to Idle"""
        self.previews.revoke_all()
        self._original_preview = None
        self._result_preview = None
        self._asset = None
        self._result = None
        self._error = None
        self._state = OrchestratorState.IDLE
        logger.info("Orchestrator closed")

    def snapshot(self) -> Dict[str, Any]:
        """JSON-friendly status for tool responses"""
        asset = self._asset
        result = self._result
        return {
            "state": self._state.value,
            "generation": self.current_generation,
            "original": {
                "name": asset.name,
                "mime_type": asset.mime_type,
                "bytes_size": asset.bytes_size,
                "size": format_file_size(asset.bytes_size),
                "width": asset.width,
                "height": asset.height,
                "preview_url": self._original_preview.url if self._original_preview else None,
            } if asset else None,
            "compressed": {
                "mime_type": result.mime_type,
                "bytes_size": result.bytes_size,
                "size": format_file_size(result.bytes_size),
                "width": result.width,
                "height": result.height,
                "preview_url": self._result_preview.url if self._result_preview else None,
            } if result else None,
            "compression_ratio": self.compression_ratio,
            "options": self._options.to_dict() if self._options else None,
            "error": str(self._error) if self._error else None,
        }

    # Internals

    def _is_current(self, generation: int, kind: str) -> bool:
        if generation != self.current_generation:
            logger.info(
                f"Discarding stale {kind} for generation {generation} "
                f"(live generation is {self.current_generation})"
            )
            return False
        if self._state is not OrchestratorState.COMPRESSING:
            logger.warning(f"Discarding {kind} for generation {generation}: no compression in flight")
            return False
        return True

    def _clear_result(self):
        if self._result_preview is not None:
            self.previews.revoke(self._result_preview)
        self._result_preview = None
        self._result = None
        self._error = None
