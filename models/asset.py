"""Asset data models"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class Asset:
    """Ingested original image, tagged with the generation it was issued under"""
    data: bytes = field(repr=False)
    mime_type: str
    name: str
    bytes_size: int
    generation: int
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class CompressedAsset:
    """Immutable codec output, tagged with the generation of its source Asset"""
    data: bytes = field(repr=False)
    mime_type: str
    bytes_size: int
    generation: int
    source_name: str
    width: Optional[int] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class PreviewHandle:
    """Non-owning display reference to an Asset or CompressedAsset"""
    handle_id: str
    url: str
    slot: str
    generation: int
    mime_type: str
    bytes_size: int


class OrchestratorState(str, Enum):
    IDLE = "Idle"
    READY = "Ready"
    COMPRESSING = "Compressing"
    COMPLETED = "Completed"
    FAILED = "Failed"
