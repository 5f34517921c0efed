"""Upload and preview tools for ImgSqueeze MCP Server"""

import logging
from typing import Optional

from mcp.server.fastmcp import FastMCP, Image as FastMCPImage

from managers.compression_orchestrator import CompressionOrchestrator
from managers.preview_registry import ORIGINAL_SLOT, RESULT_SLOT
from models.errors import ImgSqueezeError

logger = logging.getLogger("ImgSqueeze")


def register_asset_tools(
    mcp: FastMCP,
    orchestrator: CompressionOrchestrator
):
    """Register upload and preview tools with the MCP server"""

    @mcp.tool()
    def upload_image(
        path: Optional[str] = None,
        data_base64: Optional[str] = None,
        mime_type: Optional[str] = None,
        name: Optional[str] = None,
    ) -> dict:
        """Select an image to compress, replacing any previous image and result.

        Provide either a local file path or base64 data (plain or a data: URI).

        Args:
            path: Path to an image file on the server's filesystem
            data_base64: Base64-encoded image bytes
            mime_type: Declared MIME type; guessed from the path or data URI if omitted
            name: Display name; defaults to the file name or "image"

        Returns:
            Status snapshot with state "Ready", or an error if the upload is not an image.
        """
        if bool(path) == bool(data_base64):
            return {"error": "Provide exactly one of 'path' or 'data_base64'"}

        ingestion = orchestrator.ingestion
        try:
            if path:
                asset = ingestion.ingest_file(path, mime_type=mime_type, name=name)
            else:
                asset = ingestion.ingest_base64(data_base64, mime_type, name or "image")
            orchestrator.select_asset(asset)
        except ImgSqueezeError as e:
            return {"error": str(e)}
        except (OSError, ValueError) as e:
            logger.warning(f"Upload failed: {e}")
            return {"error": f"Failed to read image: {e}"}
        return orchestrator.snapshot()

    @mcp.tool()
    def get_status() -> dict:
        """Get the current state, sizes, compression ratio and preview URLs."""
        return orchestrator.snapshot()

    @mcp.tool()
    def view_preview(slot: str = RESULT_SLOT, max_dim: int = 512):
        """View the original or compressed image inline (thumbnail).

        Args:
            slot: "original" or "result" (default)
            max_dim: Maximum thumbnail dimension in pixels (default: 512)
        """
        if slot == ORIGINAL_SLOT:
            handle = orchestrator.original_preview
        elif slot == RESULT_SLOT:
            handle = orchestrator.result_preview
        else:
            return {"error": f"Unknown slot '{slot}'. Use 'original' or 'result'."}

        if handle is None:
            return {"error": f"No {slot} image to preview (state: {orchestrator.state.value})"}

        try:
            thumbnail = orchestrator.previews.render(handle.handle_id, max_dim=max_dim)
        except ImgSqueezeError as e:
            return {"error": str(e)}
        logger.info(f"view_preview: slot={slot} url={handle.url} thumb={len(thumbnail)}B")
        return FastMCPImage(data=thumbnail, format="webp")
