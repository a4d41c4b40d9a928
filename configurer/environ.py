"""Environment stores: the sink loaded values are exported to."""

import os
from abc import ABC, abstractmethod
from typing import Dict, Iterator, Mapping, Optional, Tuple


class EnvStore(ABC):
    """Key/value view of a process environment."""

    @abstractmethod
    def get(self, key: str, default: str = "") -> str:
        """Get the value of ``key``, or ``default`` when unset."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Set ``key`` to ``value``."""

    @abstractmethod
    def has(self, key: str) -> bool:
        """Whether ``key`` is set, even to an empty string."""

    @abstractmethod
    def items(self) -> Iterator[Tuple[str, str]]:
        """Iterate over a snapshot of all entries."""

    def as_dict(self) -> Dict[str, str]:
        return dict(self.items())


class OSEnvStore(EnvStore):
    """Store backed by ``os.environ``."""

    def get(self, key: str, default: str = "") -> str:
        return os.environ.get(key, default)

    def set(self, key: str, value: str) -> None:
        os.environ[key] = value

    def has(self, key: str) -> bool:
        return key in os.environ

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(list(os.environ.items()))


class MemoryEnvStore(EnvStore):
    """In-memory store, isolated from the real process environment."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: str, default: str = "") -> str:
        return self._values.get(key, default)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value

    def has(self, key: str) -> bool:
        return key in self._values

    def items(self) -> Iterator[Tuple[str, str]]:
        return iter(list(self._values.items()))


ZERO_CONTROL_CHAR_ENV = "CONFIGURER_ZERO_CONTROL_CHAR"
DEFAULT_ZERO_CONTROL_CHAR = "zero"


def get_zero_control_char(env: Optional[EnvStore] = None) -> str:
    """Tag content meaning "set the field to its zero value"."""
    store = env or OSEnvStore()
    return store.get(ZERO_CONTROL_CHAR_ENV) or DEFAULT_ZERO_CONTROL_CHAR
