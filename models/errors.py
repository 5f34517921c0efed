"""Error taxonomy for ImgSqueeze"""

from typing import Dict, Optional


class ImgSqueezeError(Exception):
    """Base class for all recoverable ImgSqueeze errors"""


class InvalidAssetType(ImgSqueezeError):
    """Upload rejected because it is not an image"""

    def __init__(self, mime_type: str, name: Optional[str] = None):
        self.mime_type = mime_type
        self.name = name
        label = f" '{name}'" if name else ""
        super().__init__(f"Please select an image file{label} (got '{mime_type or 'unknown'}')")


class ValidationError(ImgSqueezeError):
    """One or more compression options are outside their declared range"""

    def __init__(self, fields: Dict[str, str]):
        self.fields = dict(fields)
        details = "; ".join(f"{key}: {message}" for key, message in self.fields.items())
        super().__init__(f"Invalid compression options: {details}")


class CodecError(ImgSqueezeError):
    """Codec invocation failed"""


class ResourceError(ImgSqueezeError):
    """Preview or transient handle could not be allocated or used"""
