"""
Reading and writing flat configuration files.

Supported inputs: ``.env``, ``.json``, ``.yaml``/``.yml``, ``.toml``.
Supported dumps: ``.env``, ``.json``, ``.yaml``/``.yml``.
"""

import io
import json
import re
import tomllib
from pathlib import Path
from typing import IO, Any, Dict, Mapping, Union

import yaml
from dotenv import dotenv_values

from .exceptions import FailedToError, InvalidError

PARSE_FORMATS = ("env", "json", "yaml", "yml", "toml")
DUMP_EXTENSIONS = (".env", ".json", ".yaml", ".yml")


def _format_of(path: Union[str, Path]) -> str:
    path = Path(path)
    # ".env" files have no suffix, only a name.
    if path.name == ".env":
        return "env"
    return path.suffix.lstrip(".").lower()


def parse_content(fmt: str, content: str) -> Dict[str, Any]:
    """
    Parse ``content`` written in ``fmt`` into a flat mapping.

    Raises:
        InvalidError: unknown format, or the document isn't a mapping
        FailedToError: the document is malformed
    """
    fmt = fmt.lower().lstrip(".")

    if fmt == "env":
        values = dotenv_values(stream=io.StringIO(content))
        return {key: value or "" for key, value in values.items()}

    try:
        if fmt == "json":
            data = json.loads(content) if content.strip() else {}
        elif fmt in ("yaml", "yml"):
            data = yaml.safe_load(content) or {}
        elif fmt == "toml":
            data = tomllib.loads(content)
        else:
            raise InvalidError("format", f"allowed: {', '.join(PARSE_FORMATS)}")
    except (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError) as e:
        raise FailedToError(f"parse {fmt} content", e) from e

    if not isinstance(data, dict):
        raise InvalidError(f"{fmt} content", "it must be a mapping")

    return data


def parse_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Parse a file, picking the format from its extension."""
    fmt = _format_of(path)
    if fmt not in PARSE_FORMATS:
        raise InvalidError(
            "file extension", "allowed: .env, .json, .yaml | .yml, .toml"
        )

    try:
        content = Path(path).read_text()
    except OSError as e:
        raise FailedToError(f"read {path}", e) from e

    return parse_content(fmt, content)


_PLAIN_ENV_VALUE_RE = re.compile(r"[\w./:@+-]*")


def quote_env_value(value: str) -> str:
    """Quote ``value`` so that dotenv parsers read it back unchanged."""
    if _PLAIN_ENV_VALUE_RE.fullmatch(value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def dump_to_env(file: IO[str], values: Mapping[str, Any], raw_value: bool = False) -> None:
    for key, value in values.items():
        if raw_value:
            file.write(f"{key}={json.dumps(value, default=str)}\n")
        else:
            file.write(f"{key}={quote_env_value(str(value))}\n")
    file.flush()


def dump_to_json(file: IO[str], values: Mapping[str, Any]) -> None:
    json.dump(dict(values), file, indent=2, default=str)
    file.flush()


def dump_to_yaml(file: IO[str], values: Mapping[str, Any]) -> None:
    yaml.safe_dump(dict(values), file, default_flow_style=False)
    file.flush()


def dump_to_file(
    path: Union[str, Path], values: Mapping[str, Any], raw_value: bool = False
) -> None:
    """
    Dump ``values`` to ``path`` in the format given by its extension.

    Args:
        path: Destination, ``.env``, ``.json``, ``.yaml`` or ``.yml``
        values: Flat mapping to dump
        raw_value: For ``.env``, quote values as literals
    """
    fmt = _format_of(path)
    if f".{fmt}" not in DUMP_EXTENSIONS:
        raise InvalidError("file extension", "allowed: .env, .json, .yaml | .yml")

    try:
        with open(path, "w") as f:
            if fmt == "env":
                dump_to_env(f, values, raw_value)
            elif fmt == "json":
                dump_to_json(f, values)
            else:
                dump_to_yaml(f, values)
    except (OSError, yaml.YAMLError) as e:
        raise FailedToError(f"write {path}", e) from e
