"""Configuration tools for ImgSqueeze MCP Server"""

from typing import Any, Dict

from mcp.server.fastmcp import FastMCP

from image_codec import supported_formats
from managers.defaults_manager import DefaultsManager
from models.options import OUTPUT_FORMATS, RESIZE_MODES


def register_configuration_tools(
    mcp: FastMCP,
    defaults_manager: DefaultsManager
):
    """Register configuration tools with the MCP server"""

    @mcp.tool()
    def list_formats() -> dict:
        """List output formats and resize modes.

        "available" lists the formats the installed imaging library can encode;
        choosing another one makes compression fail.
        """
        return {
            "formats": list(OUTPUT_FORMATS),
            "available": supported_formats(),
            "resize_modes": list(RESIZE_MODES),
        }

    @mcp.tool()
    def get_defaults() -> dict:
        """Get current effective default compression options.

        Returns merged defaults from all sources (runtime, config, env, hardcoded).
        """
        return defaults_manager.get_all_defaults()

    @mcp.tool()
    def set_defaults(options: Dict[str, Any], persist: bool = False) -> dict:
        """Set default compression options.

        Args:
            options: Dict of option values (e.g., {"format": "jpeg", "quality": 0.7, "progressive": true})
            persist: If True, write defaults to config file (~/.config/imgsqueeze/config.json). Otherwise, changes are ephemeral.

        Returns:
            Success status, or field-level validation errors.
        """
        result = defaults_manager.set_defaults(options)
        if "errors" in result:
            return {"success": False, "errors": result["errors"]}

        if persist:
            persist_result = defaults_manager.persist_defaults(result["updated"])
            if "error" in persist_result:
                return {"success": False, "errors": {"persist": persist_result["error"]}}

        return {"success": True, "updated": result["updated"]}
