"""Asset ingestion: validates raw uploads and issues generation ids"""

import itertools
import logging
import mimetypes
from pathlib import Path
from typing import Optional, Union

from asset_processor import decode_base64_payload, image_dimensions
from models.asset import Asset
from models.errors import InvalidAssetType

logger = logging.getLogger("ImgSqueeze")


class AssetIngestion:
    """Turns (bytes, mime type, name) triples into Assets with fresh generation ids"""

    def __init__(self, start_generation: int = 1):
        self._generations = itertools.count(start_generation)
        self.last_generation = start_generation - 1

    def ingest(self, raw_bytes: bytes, declared_mime_type: str, name: str) -> Asset:
        """Validate an upload and allocate a new Asset.

        Raises:
            InvalidAssetType: If the declared MIME type is not image/*
        """
        if not declared_mime_type or not declared_mime_type.startswith("image/"):
            logger.warning(f"Rejected upload '{name}' with type '{declared_mime_type}'")
            raise InvalidAssetType(declared_mime_type, name)

        generation = next(self._generations)
        self.last_generation = generation
        data = bytes(raw_bytes)
        width, height = image_dimensions(data)
        asset = Asset(
            data=data,
            mime_type=declared_mime_type,
            name=name,
            bytes_size=len(data),
            generation=generation,
            width=width,
            height=height,
        )
        logger.info(f"Ingested '{name}' ({asset.bytes_size} bytes, {declared_mime_type}) as generation {generation}")
        return asset

    def ingest_file(
        self,
        path: Union[str, Path],
        mime_type: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Asset:
        """Read an image from disk, guessing its MIME type from the extension"""
        path = Path(path)
        declared = mime_type or mimetypes.guess_type(path.name)[0] or ""
        # Check the type before touching the file so rejections stay cheap
        if not declared.startswith("image/"):
            raise InvalidAssetType(declared, path.name)
        with open(path, "rb") as f:
            data = f.read()
        return self.ingest(data, declared, name or path.name)

    def ingest_base64(self, payload: str, mime_type: Optional[str], name: str) -> Asset:
        """Accept a base64 string or data: URI as sent by MCP clients"""
        if not mime_type and payload.startswith("data:") and ";" in payload:
            mime_type = payload[len("data:"):payload.index(";")]
        declared = mime_type or ""
        if not declared.startswith("image/"):
            raise InvalidAssetType(declared, name)
        return self.ingest(decode_base64_payload(payload), declared, name)
