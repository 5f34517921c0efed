"""Validation and clamping of compression options"""

import logging
import math
from dataclasses import fields as dataclass_fields
from typing import Any, Dict, Mapping, Union

from models.errors import ValidationError
from models.options import (
    HARDCODED_DEFAULTS,
    NUMERIC_RANGES,
    OUTPUT_FORMATS,
    RESIZE_MODES,
    CompressionOptions,
    ValidatedOptions,
)

logger = logging.getLogger("ImgSqueeze")

# camelCase names used by browser clients
FIELD_ALIASES = {
    "maxSizeMB": "max_size_mb",
    "maxWidth": "max_width",
    "maxHeight": "max_height",
}
INT_FIELDS = ("max_width", "max_height")
FLOAT_FIELDS = ("max_size_mb", "quality")

OptionsInput = Union[CompressionOptions, ValidatedOptions, Mapping[str, Any]]


def normalize_options(options: OptionsInput) -> Dict[str, Any]:
    """Return a plain dict keyed by snake_case field names"""
    if isinstance(options, (CompressionOptions, ValidatedOptions)):
        return options.to_dict()
    return {FIELD_ALIASES.get(key, key): value for key, value in options.items()}


def _coerce_number(value: Any, as_int: bool):
    if isinstance(value, bool):
        raise ValueError("must be a number")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValueError("must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError("must be a number")
    if math.isnan(number) or math.isinf(number):
        raise ValueError("must be a finite number")
    if as_int:
        if not number.is_integer():
            raise ValueError("must be a whole number")
        return int(number)
    return number


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "y", "on"}:
            return True
        if lowered in {"0", "false", "no", "n", "off", ""}:
            return False
        raise ValueError("must be a boolean")
    if isinstance(value, int):
        return bool(value)
    raise ValueError("must be a boolean")


class OptionsValidator:
    """Checks every option against its declared range and reports all violations at once"""

    def validate(self, options: OptionsInput) -> ValidatedOptions:
        """Validate options without altering them.

        Missing fields fall back to the hardcoded defaults. Unknown fields and
        out-of-range values are reported together in one ValidationError.
        """
        raw = normalize_options(options)
        values: Dict[str, Any] = dict(HARDCODED_DEFAULTS)
        violations: Dict[str, str] = {}

        known = {f.name for f in dataclass_fields(CompressionOptions)}
        for key in raw:
            if key not in known:
                violations[key] = "unknown option"

        for name in INT_FIELDS + FLOAT_FIELDS:
            if name not in raw:
                continue
            try:
                number = _coerce_number(raw[name], as_int=name in INT_FIELDS)
            except ValueError as e:
                violations[name] = str(e)
                continue
            low, high = NUMERIC_RANGES[name]
            if number < low or number > high:
                violations[name] = f"must be between {low} and {high}, got {number}"
                continue
            values[name] = number

        if "format" in raw:
            fmt = str(raw["format"]).strip().lower()
            if fmt == "jpg":
                fmt = "jpeg"
            if fmt in OUTPUT_FORMATS:
                values["format"] = fmt
            else:
                violations["format"] = f"must be one of {', '.join(OUTPUT_FORMATS)}, got {raw['format']!r}"

        # resize and progressive are passed through; no cross-field rules apply
        if "resize" in raw:
            resize = str(raw["resize"]).strip().lower()
            if resize in RESIZE_MODES:
                values["resize"] = resize
            else:
                violations["resize"] = f"must be one of {', '.join(RESIZE_MODES)}, got {raw['resize']!r}"

        if "progressive" in raw:
            try:
                values["progressive"] = _coerce_bool(raw["progressive"])
            except ValueError as e:
                violations["progressive"] = str(e)

        if violations:
            logger.info(f"Rejected compression options: {violations}")
            raise ValidationError(violations)

        return ValidatedOptions(
            max_size_mb=float(values["max_size_mb"]),
            format=values["format"],
            resize=values["resize"],
            max_width=int(values["max_width"]),
            max_height=int(values["max_height"]),
            quality=float(values["quality"]),
            progressive=values["progressive"],
        )

    def clamp(self, options: OptionsInput) -> CompressionOptions:
        """Pin numeric fields into range, leaving other fields untouched.

        Values that cannot be read as numbers fall back to their defaults.
        """
        raw = normalize_options(options)
        clamped = dict(HARDCODED_DEFAULTS)
        clamped.update({key: value for key, value in raw.items() if key in HARDCODED_DEFAULTS})
        for name, (low, high) in NUMERIC_RANGES.items():
            try:
                number = _coerce_number(clamped[name], as_int=False)
            except ValueError:
                number = HARDCODED_DEFAULTS[name]
            number = min(max(number, low), high)
            clamped[name] = int(round(number)) if name in INT_FIELDS else number
        return CompressionOptions(**clamped)
