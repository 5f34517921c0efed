"""Shared fixtures for ImgSqueeze tests"""

import asyncio
from io import BytesIO
from typing import List, Optional

import pytest
from PIL import Image

from managers.compression_orchestrator import CompressionOrchestrator
from managers.preview_registry import PreviewRegistry
from models.asset import Asset, CompressedAsset
from models.options import ValidatedOptions


def make_image_bytes(size=(320, 240), color=(200, 40, 40), format="PNG", mode="RGB") -> bytes:
    """Render a small gradient image so encoders have real pixels to work on"""
    img = Image.new(mode, size, color)
    width, height = size
    for x in range(0, width, 8):
        for y in range(0, height, 8):
            shade = (x * 255 // max(1, width - 1), y * 255 // max(1, height - 1), 120)
            if mode == "RGBA":
                shade = shade + (255,)
            img.putpixel((x, y), shade)
    buf = BytesIO()
    img.save(buf, format=format)
    return buf.getvalue()


class _PendingCall:
    def __init__(self, asset: Asset, options: ValidatedOptions):
        self.asset = asset
        self.options = options
        self.gate = asyncio.Event()
        self.data: Optional[bytes] = None
        self.error: Optional[BaseException] = None
        self.mime_type: Optional[str] = None


class GatedCodec:
    """Codec whose calls stay pending until the test releases them"""

    def __init__(self):
        self.calls: List[_PendingCall] = []

    @property
    def in_flight(self) -> int:
        return sum(1 for call in self.calls if not call.gate.is_set())

    async def compress(self, asset: Asset, options: ValidatedOptions) -> CompressedAsset:
        call = _PendingCall(asset, options)
        self.calls.append(call)
        await call.gate.wait()
        if call.error is not None:
            raise call.error
        data = call.data if call.data is not None else b"c" * max(1, asset.bytes_size // 2)
        return CompressedAsset(
            data=data,
            mime_type=call.mime_type or options.mime_type,
            bytes_size=len(data),
            generation=asset.generation,
            source_name=asset.name,
        )

    def release(self, index: int = -1, data: Optional[bytes] = None, error: Optional[BaseException] = None,
                mime_type: Optional[str] = None):
        call = self.calls[index]
        call.data = data
        call.error = error
        call.mime_type = mime_type
        call.gate.set()


class ImmediateCodec:
    """Codec that settles at once with a fixed payload or error"""

    def __init__(self, data: bytes = b"small", error: Optional[BaseException] = None):
        self.data = data
        self.error = error
        self.calls = 0

    async def compress(self, asset: Asset, options: ValidatedOptions) -> CompressedAsset:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return CompressedAsset(
            data=self.data,
            mime_type=options.mime_type,
            bytes_size=len(self.data),
            generation=asset.generation,
            source_name=asset.name,
        )


class FakeMCP:
    """Collects tool functions instead of serving them"""

    def __init__(self):
        self.tools = {}

    def tool(self, name=None, description=None):
        def decorator(fn):
            self.tools[name or fn.__name__] = fn
            return fn
        return decorator


@pytest.fixture
def png_bytes():
    return make_image_bytes()


@pytest.fixture
def registry():
    return PreviewRegistry()


@pytest.fixture
def gated_codec():
    return GatedCodec()


@pytest.fixture
def orchestrator(gated_codec, registry):
    return CompressionOrchestrator(gated_codec, previews=registry)
