"""
Tag-directed traversal of configuration records.

A record is a pydantic model or a dataclass instance. Fields declare their
tags with ``Annotated``::

    class Database(BaseModel):
        host: Annotated[str, Tag(default="localhost", env="DB_HOST")] = ""
        port: Annotated[int, Tag(default="5432"), Field(ge=1)] = 0

Dataclass fields may also use ``field(metadata={"default": "5432"})``.
"""

import dataclasses
import types
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from typing import (
    Annotated,
    Any,
    Callable,
    Mapping,
    Optional,
    Tuple,
    Union,
    get_args,
    get_origin,
    get_type_hints,
)

from pydantic import BaseModel

from ..exceptions import InvalidError

DEFAULT_TAG = "default"
ENV_TAG = "env"
ID_TAG = "id"

SKIP = "-"

MAX_DEPTH = 32


@dataclass(frozen=True)
class Tag:
    """Tags of a record field."""

    default: Optional[str] = None
    env: Optional[str] = None
    id: Optional[str] = None

    def get(self, name: str) -> str:
        return getattr(self, name, None) or ""


def is_record_type(tp: Any) -> bool:
    """Whether ``tp`` is a pydantic model class or a dataclass."""
    if not isinstance(tp, type):
        return False
    return issubclass(tp, BaseModel) or dataclasses.is_dataclass(tp)


def is_record(value: Any) -> bool:
    return not isinstance(value, type) and is_record_type(type(value))


def unwrap(hint: Any) -> Tuple[Any, bool, Tuple[Any, ...]]:
    """
    Strip ``Annotated`` and ``Optional`` from a type hint.

    Returns:
        (base type, whether it was optional, collected Annotated metadata)
    """
    extras = []
    optional = False
    while True:
        origin = get_origin(hint)
        if origin is Annotated:
            extras.extend(hint.__metadata__)
            hint = get_args(hint)[0]
            continue
        if origin is Union or origin is types.UnionType:
            args = get_args(hint)
            rest = [a for a in args if a is not type(None)]
            if len(rest) == 1 and len(rest) < len(args):
                optional = True
                hint = rest[0]
                continue
        return hint, optional, tuple(extras)


@lru_cache(maxsize=None)
def record_fields(cls: type) -> Tuple[Tuple[str, Any, Mapping[str, Any]], ...]:
    """List (name, type hint, dataclass metadata) for every field of ``cls``."""
    hints = get_type_hints(cls, include_extras=True)
    if issubclass(cls, BaseModel):
        return tuple(
            (name, hints.get(name, info.annotation), {})
            for name, info in cls.model_fields.items()
        )
    return tuple(
        (f.name, hints.get(f.name, f.type), f.metadata)
        for f in dataclasses.fields(cls)
    )


def tag_content(extras: Tuple[Any, ...], metadata: Mapping[str, Any], name: str) -> str:
    content = ""
    for item in extras:
        if isinstance(item, Tag) and item.get(name):
            content = item.get(name)
    if not content and metadata.get(name):
        content = str(metadata[name])
    return content


def is_frozen(record: Any) -> bool:
    if isinstance(record, BaseModel):
        return bool(type(record).model_config.get("frozen"))
    return type(record).__dataclass_params__.frozen


def zero_value(tp: Any) -> Any:
    """Language-level zero value of a supported type, None otherwise."""
    base, _, _ = unwrap(tp)
    origin = get_origin(base) or base
    if base is bool:
        return False
    if base in (str, int, float):
        return base()
    if base is datetime:
        return datetime.min
    if base is timedelta:
        return timedelta(0)
    if origin is list:
        return []
    if origin is dict:
        return {}
    if is_record_type(base):
        return allocate(base)
    return None


def is_zero(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, datetime):
        return value == datetime.min
    if is_record(value):
        return all(
            is_zero(getattr(value, name, None)) for name, _, _ in record_fields(type(value))
        )
    try:
        return not value
    except (TypeError, ValueError):
        return False


def allocate(cls: type) -> Any:
    """Build a zero-initialised record of ``cls``."""
    if issubclass(cls, BaseModel):
        return cls.model_construct()

    kwargs = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            hint = get_type_hints(cls, include_extras=True).get(f.name, f.type)
            kwargs[f.name] = zero_value(hint)
    return cls(**kwargs)


@dataclass
class FieldRef:
    """A settable handle on one field of a record."""

    owner: Any
    name: str
    annotation: Any
    optional: bool = False

    @property
    def path(self) -> str:
        return f"{type(self.owner).__name__}.{self.name}"

    @property
    def settable(self) -> bool:
        return not is_frozen(self.owner)

    def get(self) -> Any:
        return getattr(self.owner, self.name, None)

    def set(self, value: Any) -> None:
        setattr(self.owner, self.name, value)

    def is_zero(self) -> bool:
        return is_zero(self.get())


Callback = Callable[[FieldRef, str], None]


def walk(tag_name: str, target: Any, callback: Callback, _depth: int = 0) -> None:
    """
    Visit every public field of ``target`` and its nested records.

    ``callback(field, tag)`` is called for each field whose ``tag_name`` tag
    is set. Nested records are recursed into whether or not their own tag
    fired, and ``None`` nested records are allocated first. The first
    exception raised by ``callback`` aborts the walk.
    """
    if not is_record(target):
        raise InvalidError("target", "it must be a record instance")

    if _depth > MAX_DEPTH:
        raise InvalidError(
            type(target).__name__, f"records nested deeper than {MAX_DEPTH} levels"
        )

    for name, hint, metadata in record_fields(type(target)):
        if name.startswith("_"):
            continue

        base, optional, extras = unwrap(hint)
        ref = FieldRef(target, name, base, optional)
        nested = is_record_type(base)

        if nested and ref.get() is None and ref.settable:
            ref.set(allocate(base))

        tag = tag_content(extras, metadata, tag_name)
        if tag and tag != SKIP:
            callback(ref, tag)

        if nested:
            value = ref.get()
            if value is not None:
                walk(tag_name, value, callback, _depth + 1)
