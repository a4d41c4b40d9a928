"""
Default, environment and identity passes over configuration records.

``dump`` (alias ``process``) runs, in order:

1. ``set_default``: tag ``default``, only fills zero fields
2. ``set_env``: tag ``env``, always overrides when the variable is non-empty
3. ``set_id``: tag ``id``, fills zero fields with a generated identifier
4. ``validate``: pydantic validation, reporting every violation
"""

import dataclasses
import types
import uuid
from functools import lru_cache
from typing import Annotated, Any, Dict, List, Optional, Set, Union, get_args, get_origin

from pydantic import AliasChoices, BaseModel, ConfigDict, TypeAdapter, create_model
from pydantic import ValidationError as PydanticValidationError

from ..environ import EnvStore, OSEnvStore, get_zero_control_char
from ..exceptions import InvalidError, ValidationError
from .coercion import set_value_from_tag
from .walker import (
    DEFAULT_TAG,
    ENV_TAG,
    ID_TAG,
    FieldRef,
    is_record,
    record_fields,
    walk,
)

UUID_STRATEGY = "uuid"


def generate_uuid() -> str:
    return str(uuid.uuid4())


def set_default(target: Any, env: Optional[EnvStore] = None) -> None:
    """Apply ``default`` tags to every zero-valued field of ``target``."""
    zero_token = get_zero_control_char(env)

    def apply(ref: FieldRef, tag: str) -> None:
        set_value_from_tag(ref, tag, tag, False, zero_token)

    walk(DEFAULT_TAG, target, apply)


def set_env(target: Any, env: Optional[EnvStore] = None) -> None:
    """Overlay fields of ``target`` with the env vars named by their ``env`` tags."""
    store = env or OSEnvStore()
    zero_token = get_zero_control_char(store)

    def apply(ref: FieldRef, tag: str) -> None:
        value = store.get(tag)
        if not value:
            return
        set_value_from_tag(ref, tag, value, True, zero_token)

    walk(ENV_TAG, target, apply)


def set_id(target: Any, env: Optional[EnvStore] = None) -> None:
    """Generate identifiers for zero-valued fields tagged ``id``."""
    zero_token = get_zero_control_char(env)

    def apply(ref: FieldRef, tag: str) -> None:
        if tag != UUID_STRATEGY:
            raise InvalidError(
                f"ID type {tag!r} of {ref.path}",
                f"allowed: {UUID_STRATEGY}",
                details={"field": ref.path, "allowed": [UUID_STRATEGY]},
            )
        set_value_from_tag(ref, tag, generate_uuid(), False, zero_token)

    walk(ID_TAG, target, apply)


def as_data(record: Any) -> Dict[str, Any]:
    """
    Current field values of ``record``, nested records as dicts.

    Model fields are keyed by the name pydantic validates them under, which
    is their alias when they have one.
    """
    data = {}
    for name, _, _ in record_fields(type(record)):
        if not hasattr(record, name):
            continue
        data[_data_key(type(record), name)] = _plain(getattr(record, name))
    return data


def _data_key(cls: type, name: str) -> str:
    if not issubclass(cls, BaseModel):
        return name
    info = cls.model_fields[name]
    alias = info.validation_alias
    if isinstance(alias, AliasChoices):
        alias = alias.choices[0]
    if isinstance(alias, str):
        return alias
    return info.alias or name


def _plain(value: Any) -> Any:
    if is_record(value):
        return as_data(value)
    if isinstance(value, list):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


_building: Set[type] = set()


@lru_cache(maxsize=None)
def _validation_model(cls: type) -> type:
    """Model with the fields of dataclass ``cls``, minus their metadata."""
    _building.add(cls)
    try:
        fields = {
            name: (_validation_hint(hint), ...)
            for name, hint, _ in record_fields(cls)
            if not name.startswith("_")
        }
    finally:
        _building.discard(cls)
    return create_model(
        cls.__name__,
        __config__=ConfigDict(arbitrary_types_allowed=True),
        **fields,
    )


def _validation_hint(hint: Any) -> Any:
    """Swap dataclasses inside ``hint`` for their validation models."""
    if dataclasses.is_dataclass(hint) and isinstance(hint, type):
        # Self-referencing records are not validated below the first level.
        if hint in _building:
            return Any
        return _validation_model(hint)

    origin = get_origin(hint)
    args = get_args(hint)
    if origin is None or not args:
        return hint
    if origin is Annotated:
        return Annotated[(_validation_hint(args[0]), *hint.__metadata__)]

    converted = tuple(_validation_hint(arg) for arg in args)
    if converted == args:
        return hint
    if origin is Union or origin is types.UnionType:
        return Union[converted]
    return origin[converted]


@lru_cache(maxsize=None)
def _validator(cls: type) -> TypeAdapter:
    if issubclass(cls, BaseModel):
        return TypeAdapter(cls)
    return TypeAdapter(_validation_model(cls))


def validate(target: Any) -> None:
    """
    Validate the current values of ``target`` against its field rules.

    Raises:
        ValidationError: listing every violation in ``details["errors"]``
    """
    if not is_record(target):
        raise InvalidError("target", "it must be a record instance")

    try:
        _validator(type(target)).validate_python(as_data(target))
    except PydanticValidationError as e:
        errors: List[Dict[str, str]] = [
            {
                "loc": ".".join(str(part) for part in error["loc"]),
                "msg": error["msg"],
                "type": error["type"],
            }
            for error in e.errors()
        ]
        summary = "; ".join(f"{error['loc']}: {error['msg']}" for error in errors)
        raise ValidationError(
            f"{type(target).__name__} failed validation ({len(errors)} errors): {summary}",
            details={"errors": errors},
        ) from e


def dump(target: Any, env: Optional[EnvStore] = None) -> None:
    """Run defaults, env overlay, identifiers and validation on ``target``."""
    set_default(target, env)
    set_env(target, env)
    set_id(target, env)
    validate(target)


def process(target: Any, env: Optional[EnvStore] = None) -> None:
    """Alias of ``dump``."""
    dump(target, env)
