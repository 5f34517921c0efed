import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator

from mcp.server.fastmcp import FastMCP

from image_codec import PillowCodec
from managers.compression_orchestrator import CompressionOrchestrator
from managers.defaults_manager import DefaultsManager
from tools.asset import register_asset_tools
from tools.compression import register_compression_tools
from tools.configuration import register_configuration_tools

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("ImgSqueeze")

OUTPUT_DIR = Path(os.getenv("IMGSQUEEZE_OUTPUT_DIR", "compressed"))
TRANSPORT = os.getenv("IMGSQUEEZE_TRANSPORT", "streamable-http")

# Single orchestrator per server process; it owns the live image and its previews
defaults_manager = DefaultsManager()
orchestrator = CompressionOrchestrator(PillowCodec(), validator=defaults_manager.validator)


class AppContext:
    def __init__(self, orchestrator: CompressionOrchestrator):
        self.orchestrator = orchestrator


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle"""
    logger.info("Starting ImgSqueeze server lifecycle...")
    try:
        yield AppContext(orchestrator=orchestrator)
    finally:
        # Teardown revokes every preview still alive
        orchestrator.close()
        logger.info("Shutting down ImgSqueeze server")


mcp = FastMCP("ImgSqueeze_MCP_Server", lifespan=app_lifespan)

register_asset_tools(mcp, orchestrator)
register_compression_tools(mcp, orchestrator, defaults_manager, OUTPUT_DIR)
register_configuration_tools(mcp, defaults_manager)
logger.info(f"Registered tools; downloads go to {OUTPUT_DIR.resolve()}")

if __name__ == "__main__":
    mcp.run(transport=TRANSPORT)
