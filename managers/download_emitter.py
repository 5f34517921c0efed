"""Download emitter: one-shot save of a compressed result"""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from managers.preview_registry import DOWNLOAD_SLOT, PreviewRegistry
from models.asset import CompressedAsset

logger = logging.getLogger("ImgSqueeze")

ARTIFACT_PREFIX = "compressed-"

SaveSink = Callable[[str, bytes], None]


def artifact_name_for(compressed: CompressedAsset) -> str:
    # Display names may carry a client-side path; only the last component is kept
    base_name = compressed.source_name.replace("\\", "/").rsplit("/", 1)[-1]
    return f"{ARTIFACT_PREFIX}{base_name or 'image'}"


class DirectorySaveTarget:
    """Save sink that writes artifacts atomically into a directory"""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.last_path: Optional[Path] = None

    def __call__(self, artifact_name: str, data: bytes):
        # Plain filename only; anything path-like is reduced to its last component
        safe_name = Path(artifact_name).name
        if not safe_name or safe_name in (".", ".."):
            raise ValueError(f"Invalid artifact name: {artifact_name!r}")

        self.directory.mkdir(parents=True, exist_ok=True)
        target_path = self.directory / safe_name
        temp_path = target_path.with_suffix(target_path.suffix + ".tmp")
        try:
            with open(temp_path, "wb") as f:
                f.write(data)
            temp_path.replace(target_path)
        except Exception:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError:
                    logger.warning(f"Could not remove temp file {temp_path}")
            raise

        self.last_path = target_path
        logger.info(f"Saved {target_path} ({len(data)} bytes)")


class DownloadEmitter:
    """Materializes a CompressedAsset as a saved artifact"""

    def __init__(self, save: SaveSink, previews: PreviewRegistry):
        self.save = save
        self.previews = previews

    def emit(self, compressed: CompressedAsset) -> None:
        """Save compressed as 'compressed-<original name>'.

        The transient handle used for the save is revoked on every exit path;
        a failing save still propagates its error.
        """
        artifact_name = artifact_name_for(compressed)
        handle = self.previews.create(compressed, DOWNLOAD_SLOT)
        try:
            self.save(artifact_name, self.previews.read(handle.handle_id))
            logger.info(f"Emitted download {artifact_name} ({compressed.bytes_size} bytes)")
        finally:
            self.previews.revoke(handle)
