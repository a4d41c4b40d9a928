"""
configurer - load configuration and secrets into the environment

Loads flat key/value data from a provider (.env files, text, AWS Parameter
Store, AWS Secrets Manager, Vault), exports it as environment variables and
runs commands with it. Applications populate typed records from the same
environment with tag-driven defaults, env overlays and generated IDs.

Key Features:
- Tag-driven record population for pydantic models and dataclasses
- Providers with key transforms (prefix, suffix, casing)
- Writing values back to providers, including GitHub Actions
- Structured logging with JSON output

Usage:
    >>> from typing import Annotated
    >>> from pydantic import BaseModel
    >>> from configurer import Tag, dump
    >>> class Settings(BaseModel):
    ...     port: Annotated[int, Tag(default="8080", env="PORT")] = 0
    >>> settings = Settings()
    >>> dump(settings)
"""

__version__ = "0.1.0"

# Environment
from .environ import EnvStore, MemoryEnvStore, OSEnvStore

# Exceptions
from .exceptions import (
    ConfigurerError,
    FailedToError,
    InvalidError,
    MissingError,
    NotFoundError,
    NotSupportedError,
    ParseError,
    RequiredError,
    ValidationError,
)

# Key and write options
from .options import (
    WriteOptions,
    with_environment,
    with_http_verb,
    with_key_caser,
    with_key_prefixer,
    with_key_replacer,
    with_key_suffixer,
    with_target,
    with_variable,
)

# Record population
from .processing import (
    Tag,
    dump,
    process,
    set_default,
    set_env,
    set_id,
    validate,
    walk,
)

# Providers
from .provider import Provider, export_to_env_var

__all__ = [
    "ConfigurerError",
    "EnvStore",
    "FailedToError",
    "InvalidError",
    "MemoryEnvStore",
    "MissingError",
    "NotFoundError",
    "NotSupportedError",
    "OSEnvStore",
    "ParseError",
    "Provider",
    "RequiredError",
    "Tag",
    "ValidationError",
    "WriteOptions",
    "dump",
    "export_to_env_var",
    "process",
    "set_default",
    "set_env",
    "set_id",
    "validate",
    "walk",
    "with_environment",
    "with_http_verb",
    "with_key_caser",
    "with_key_prefixer",
    "with_key_replacer",
    "with_key_suffixer",
    "with_target",
    "with_variable",
]
