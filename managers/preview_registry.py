"""Preview registry: sole owner of ephemeral display handles"""

import logging
import uuid
from typing import Dict, List, Optional, Tuple, Union

from asset_processor import create_thumbnail
from models.asset import Asset, CompressedAsset, PreviewHandle
from models.errors import ResourceError

logger = logging.getLogger("ImgSqueeze")

ORIGINAL_SLOT = "original"
RESULT_SLOT = "result"
DOWNLOAD_SLOT = "download"
SLOTS = (ORIGINAL_SLOT, RESULT_SLOT, DOWNLOAD_SLOT)

Previewable = Union[Asset, CompressedAsset]


class PreviewRegistry:
    """Allocates and revokes preview handles, at most one live handle per slot"""

    def __init__(self):
        self._handles: Dict[str, Tuple[PreviewHandle, bytes]] = {}
        self._slots: Dict[str, str] = {}
        self.created_count = 0
        self.revoked_count = 0

    def create(self, entity: Previewable, slot: str) -> PreviewHandle:
        """Allocate a handle for entity, revoking whatever the slot held before"""
        if slot not in SLOTS:
            raise ResourceError(f"Unknown preview slot '{slot}'. Available slots: {', '.join(SLOTS)}")
        data = getattr(entity, "data", None)
        if not isinstance(data, (bytes, bytearray)):
            raise ResourceError(f"Cannot allocate preview for {type(entity).__name__}: no byte payload")

        previous_id = self._slots.get(slot)
        if previous_id is not None:
            self.revoke(self._handles[previous_id][0])

        handle_id = str(uuid.uuid4())
        handle = PreviewHandle(
            handle_id=handle_id,
            url=f"preview://{slot}/{handle_id}",
            slot=slot,
            generation=entity.generation,
            mime_type=entity.mime_type,
            bytes_size=len(data),
        )
        self._handles[handle_id] = (handle, bytes(data))
        self._slots[slot] = handle_id
        self.created_count += 1
        logger.debug(f"Created preview {handle.url} for generation {entity.generation}")
        return handle

    def revoke(self, handle: Optional[PreviewHandle]) -> bool:
        """Release a handle. Returns False (and releases nothing) if it is not live."""
        if handle is None:
            return False
        entry = self._handles.pop(handle.handle_id, None)
        if entry is None:
            logger.warning(f"Ignoring revoke of preview {handle.url}: already revoked or unknown")
            return False
        if self._slots.get(handle.slot) == handle.handle_id:
            del self._slots[handle.slot]
        self.revoked_count += 1
        logger.debug(f"Revoked preview {handle.url}")
        return True

    def revoke_all(self) -> int:
        """Revoke every live handle (teardown)"""
        handles = [handle for handle, _ in self._handles.values()]
        for handle in handles:
            self.revoke(handle)
        if handles:
            logger.info(f"Revoked {len(handles)} preview handles")
        return len(handles)

    def get(self, handle_id: str) -> Optional[PreviewHandle]:
        entry = self._handles.get(handle_id)
        return entry[0] if entry else None

    def get_slot(self, slot: str) -> Optional[PreviewHandle]:
        handle_id = self._slots.get(slot)
        return self.get(handle_id) if handle_id else None

    def is_live(self, handle: PreviewHandle) -> bool:
        return handle.handle_id in self._handles

    def live_handles(self) -> List[PreviewHandle]:
        return [handle for handle, _ in self._handles.values()]

    def read(self, handle_id: str) -> bytes:
        """Return the bytes behind a live handle"""
        entry = self._handles.get(handle_id)
        if entry is None:
            raise ResourceError(f"Preview {handle_id} is not live")
        return entry[1]

    def render(self, handle_id: str, max_dim: int = 512, quality: int = 70) -> bytes:
        """Render a WebP thumbnail for a live handle"""
        data = self.read(handle_id)
        try:
            return create_thumbnail(data, max_dim=max_dim, quality=quality)
        except Exception as e:
            logger.warning(f"Failed to render preview {handle_id}: {e}")
            raise ResourceError(f"Failed to render preview: {e}") from e
