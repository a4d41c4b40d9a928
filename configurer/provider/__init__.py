"""
Provider base class and the environment export sink.

A provider fetches flat key/value data from its store, transforms each key,
and exports it to the environment. Values already present in the
environment win unless the provider was built with ``override=True``.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Mapping, Optional

import structlog
from pydantic import BaseModel

from ..environ import EnvStore, OSEnvStore, get_zero_control_char
from ..exceptions import ConfigurerError, FailedToError, InvalidError, NotSupportedError
from ..logger import get_provider_logger
from ..options import KeyFunc, WriteFunc, WriteOptions, apply_key_funcs, build_write_options
from ..processing import coerce, dump
from ..processing.walker import is_record_type, record_fields, unwrap

NAME_MIN_LENGTH = 3
NAME_MAX_LENGTH = 50


def format_value(value: Any) -> str:
    """Render a loaded value as environment variable text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    return str(value)


def convert_env_value(value: str) -> Any:
    """Best-effort typing of an environment value: bool, int, float, str."""
    if value == "true":
        return True
    if value == "false":
        return False
    for convert in (int, float):
        try:
            return convert(value)
        except ValueError:
            continue
    return value


class Provider(ABC):
    """Base class of every configuration provider."""

    def __init__(
        self,
        name: str,
        override: bool = False,
        raw_value: bool = False,
        env: Optional[EnvStore] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ):
        if not NAME_MIN_LENGTH <= len(name or "") <= NAME_MAX_LENGTH:
            raise InvalidError(
                "provider name",
                f"it must be {NAME_MIN_LENGTH} to {NAME_MAX_LENGTH} characters long",
            )

        self.name = name
        self.override = override
        self.raw_value = raw_value
        self.env = env or OSEnvStore()
        self.logger = logger or get_provider_logger(name)

    def get_name(self) -> str:
        return self.name

    def get_logger(self) -> structlog.stdlib.BoundLogger:
        return self.logger

    def get_override(self) -> bool:
        return self.override

    def get_raw_value(self) -> bool:
        return self.raw_value

    @abstractmethod
    def load(self, *key_funcs: KeyFunc) -> Dict[str, str]:
        """Fetch values, export them to the environment, return the final map."""

    def write(self, values: Mapping[str, Any], *write_funcs: WriteFunc) -> None:
        """Persist ``values`` to the provider's store."""
        raise NotSupportedError(f"{self.name} write")

    def write_options(self, write_funcs: Iterable[WriteFunc]) -> WriteOptions:
        return build_write_options(write_funcs)

    def close(self) -> None:
        """Release connections held by the provider."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def export_all(
        self, values: Mapping[str, Any], key_funcs: Iterable[KeyFunc]
    ) -> Dict[str, str]:
        """Transform every key of ``values`` and export it."""
        key_funcs = tuple(key_funcs)
        final_values = {}
        for key, value in values.items():
            key = apply_key_funcs(key, key_funcs)
            final_values[key] = export_to_env_var(self, key, value)
        return final_values

    def export_to_struct(self, target: Any) -> None:
        """
        Populate ``target`` from the environment, then run ``dump`` on it.

        Environment keys match field names (or pydantic aliases) regardless of
        case. Nested records are only reachable through their ``env`` tags.
        """
        environ = {key.lower(): value for key, value in self.env.items()}
        zero_token = get_zero_control_char(self.env)
        cls = type(target)

        for name, hint, _ in record_fields(cls):
            if name.startswith("_"):
                continue

            keys = [name]
            if isinstance(target, BaseModel) and cls.model_fields[name].alias:
                keys.append(cls.model_fields[name].alias)

            raw = next((environ[k.lower()] for k in keys if k.lower() in environ), None)
            if raw is None:
                continue

            base = unwrap(hint)[0]
            if is_record_type(base):
                continue

            try:
                if base is Any or base is object:
                    value = convert_env_value(raw)
                else:
                    value = coerce(base, raw, zero_token, field=f"{cls.__name__}.{name}")
            except ConfigurerError as e:
                raise FailedToError(f"export env vars to {cls.__name__}", e) from e

            setattr(target, name, value)

        dump(target, self.env)


def export_to_env_var(provider: Provider, key: str, value: Any) -> str:
    """
    Export one key to the provider's environment.

    Returns:
        The value now held by the environment: the existing one when it was
        already set and the provider doesn't override, the loaded one
        otherwise.
    """
    if provider.get_raw_value():
        final_value = json.dumps(value, default=str)
    else:
        final_value = format_value(value)

    existing = provider.env.get(key)
    if existing and not provider.get_override():
        final_value = existing

    try:
        provider.env.set(key, final_value)
    except (OSError, ValueError) as e:
        raise FailedToError(f"export {key} env var", e) from e

    provider.get_logger().debug("Exported key", key=key)

    return final_value


__all__ = [
    "Provider",
    "convert_env_value",
    "export_to_env_var",
    "format_value",
]
