"""
Record population engine.

Walks a pydantic model or dataclass instance, applies ``default`` tags,
overlays ``env`` tags, generates ``id`` tags and validates the result.
"""

from .coercion import coerce, infer_value, parse_duration, set_value_from_tag
from .overlay import (
    as_data,
    dump,
    generate_uuid,
    process,
    set_default,
    set_env,
    set_id,
    validate,
)
from .walker import MAX_DEPTH, SKIP, FieldRef, Tag, is_zero, walk

__all__ = [
    "MAX_DEPTH",
    "SKIP",
    "FieldRef",
    "Tag",
    "as_data",
    "coerce",
    "dump",
    "generate_uuid",
    "infer_value",
    "is_zero",
    "parse_duration",
    "process",
    "set_default",
    "set_env",
    "set_id",
    "set_value_from_tag",
    "validate",
    "walk",
]
