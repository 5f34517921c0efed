"""Compression and download tools for ImgSqueeze MCP Server"""

import logging
from pathlib import Path
from typing import Optional

from mcp.server.fastmcp import FastMCP

from asset_processor import format_file_size
from managers.compression_orchestrator import CompressionOrchestrator
from managers.defaults_manager import DefaultsManager
from managers.download_emitter import DirectorySaveTarget, DownloadEmitter
from models.asset import OrchestratorState
from models.errors import ImgSqueezeError, ValidationError

logger = logging.getLogger("ImgSqueeze")


def register_compression_tools(
    mcp: FastMCP,
    orchestrator: CompressionOrchestrator,
    defaults_manager: DefaultsManager,
    output_dir: Path
):
    """Register compression and download tools with the MCP server"""

    @mcp.tool()
    async def compress_image(
        max_size_mb: Optional[float] = None,
        format: Optional[str] = None,
        resize: Optional[str] = None,
        max_width: Optional[int] = None,
        max_height: Optional[int] = None,
        quality: Optional[float] = None,
        progressive: Optional[bool] = None,
    ) -> dict:
        """Compress the selected image. Omitted options use the current defaults.

        Args:
            max_size_mb: Target maximum output size in MB (0.1-50)
            format: Output format: "webp", "jpeg", "png" or "avif"
            resize: Resize mode: "contain", "cover", "fill", "inside" or "outside"
            max_width: Maximum output width in pixels (100-4000)
            max_height: Maximum output height in pixels (100-4000)
            quality: Encoder quality (0.1-1.0)
            progressive: Progressive encoding (used by JPEG)

        Returns:
            Status snapshot after the compression settles ("Completed" or "Failed"),
            or an error when no image is selected, options are invalid, or a
            compression is already running.
        """
        overrides = {
            "max_size_mb": max_size_mb,
            "format": format,
            "resize": resize,
            "max_width": max_width,
            "max_height": max_height,
            "quality": quality,
            "progressive": progressive,
        }
        try:
            options = defaults_manager.resolve(overrides)
            state = await orchestrator.start_compression(options)
        except ValidationError as e:
            return {"error": str(e), "fields": e.fields}

        if state is None:
            hints = {
                OrchestratorState.IDLE: "upload an image first",
                OrchestratorState.COMPRESSING: "a compression is already running",
                OrchestratorState.COMPLETED: "upload the image again to recompress it with new options",
            }
            hint = hints.get(orchestrator.state)
            message = f"Cannot start compression in state {orchestrator.state.value}"
            return {
                **orchestrator.snapshot(),
                "error": f"{message}: {hint}" if hint else message,
            }
        return orchestrator.snapshot()

    @mcp.tool()
    def download_compressed(directory: Optional[str] = None) -> dict:
        """Save the compressed image as 'compressed-<original name>'.

        Args:
            directory: Target directory (default: the server's output directory)
        """
        target = DirectorySaveTarget(Path(directory) if directory else output_dir)
        emitter = DownloadEmitter(target, orchestrator.previews)
        try:
            artifact_name = orchestrator.download(emitter)
        except ImgSqueezeError as e:
            return {"error": str(e)}
        except OSError as e:
            logger.error(f"Download failed: {e}")
            return {"error": f"Failed to save compressed image: {e}"}

        result = orchestrator.result
        return {
            "artifact_name": artifact_name,
            "path": str(target.last_path),
            "bytes_size": result.bytes_size,
            "size": format_file_size(result.bytes_size),
            "mime_type": result.mime_type,
        }

    @mcp.tool()
    def format_size(bytes_size: int) -> dict:
        """Format a byte count as a human-readable size (e.g. 1536 -> "1.5 KB")."""
        return {"bytes_size": bytes_size, "size": format_file_size(bytes_size)}
