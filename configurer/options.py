"""
Options for provider operations.

Key functions transform every loaded key before it's exported, applied
left to right. Write functions fill a ``WriteOptions`` for ``Provider.write``.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List

from .exceptions import InvalidError

KeyFunc = Callable[[str], str]


class Case(str, Enum):
    """Supported key casings."""

    CAMEL = "camel"
    KEBAB = "kebab"
    LOWER = "lower"
    SNAKE = "snake"
    UPPER = "upper"


ALLOWED_CASES = [case.value for case in Case]

_WORD_RE = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")


def split_words(key: str) -> List[str]:
    """Split ``userName``, ``user_name``, ``USER-NAME`` into words."""
    return _WORD_RE.findall(key)


def to_snake(key: str) -> str:
    return "_".join(word.lower() for word in split_words(key))


def to_kebab(key: str) -> str:
    return "-".join(word.lower() for word in split_words(key))


def to_camel(key: str) -> str:
    return "".join(word.capitalize() for word in split_words(key))


_CASERS = {
    Case.CAMEL.value: to_camel,
    Case.KEBAB.value: to_kebab,
    Case.LOWER.value: str.lower,
    Case.SNAKE.value: to_snake,
    Case.UPPER.value: str.upper,
}


def with_key_prefixer(prefix: str) -> KeyFunc:
    def prefixer(key: str) -> str:
        return f"{prefix}{key}"

    return prefixer


def with_key_suffixer(suffix: str) -> KeyFunc:
    def suffixer(key: str) -> str:
        return f"{key}{suffix}"

    return suffixer


def with_key_caser(case: str) -> KeyFunc:
    """Convert keys to ``case``; unknown cases leave keys unchanged."""
    caser = _CASERS.get(str(getattr(case, "value", case)))

    def apply(key: str) -> str:
        if caser is None:
            return key
        return caser(key)

    return apply


def with_key_replacer(replacer: KeyFunc) -> KeyFunc:
    def replace(key: str) -> str:
        return replacer(key)

    return replace


def apply_key_funcs(key: str, key_funcs: Iterable[KeyFunc]) -> str:
    for func in key_funcs:
        key = func(key)
    return key


@dataclass
class WriteOptions:
    """Where and how values are written."""

    environment: str = ""
    http_verb: str = ""
    target: str = ""
    variable: bool = False


WriteFunc = Callable[[WriteOptions], None]


def with_environment(environment: str) -> WriteFunc:
    def apply(options: WriteOptions) -> None:
        if not environment:
            raise InvalidError("environment", "can't be empty")
        options.environment = environment

    return apply


def with_http_verb(http_verb: str) -> WriteFunc:
    def apply(options: WriteOptions) -> None:
        if not http_verb:
            raise InvalidError("http_verb", "can't be empty")
        options.http_verb = http_verb

    return apply


def with_target(target: str) -> WriteFunc:
    def apply(options: WriteOptions) -> None:
        if not target:
            raise InvalidError("target", "can't be empty")
        options.target = target

    return apply


def with_variable(variable: bool) -> WriteFunc:
    def apply(options: WriteOptions) -> None:
        options.variable = variable

    return apply


def build_write_options(write_funcs: Iterable[WriteFunc]) -> WriteOptions:
    options = WriteOptions()
    for func in write_funcs:
        func(options)
    return options
