"""Configuration sources and lookup for the pipeline core.

Keys are looked up without the ``TALENTFLOW_`` prefix; each source adds it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from functools import lru_cache
import logging
import os
from pathlib import Path
from typing import Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_QUOTES = ('"', "'")


class ConfigSource(Protocol):
    def get(self, key: str) -> str | None: ...


def _prefixed(prefix: str | None, key: str) -> str:
    return f"{prefix}{key}" if prefix else key


def parse_dotenv(text: str) -> dict[str, str]:
    """Parse ``KEY=value`` lines; comments, blanks and malformed lines are skipped."""
    values: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export ") :].lstrip()
        name, sep, value = line.partition("=")
        if not sep or line.startswith("#") or not name.strip():
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] in _QUOTES and value[-1] == value[0]:
            value = value[1:-1]
        values[name.strip()] = value
    return values


@dataclass(slots=True)
class EnvConfigSource:
    prefix: str | None = None

    def get(self, key: str) -> str | None:
        return os.environ.get(_prefixed(self.prefix, key))


@dataclass(slots=True)
class DotEnvConfigSource:
    """Values from a ``.env`` file, read once on first lookup; a missing file is empty."""

    path: Path = Path(".env")
    prefix: str | None = None
    encoding: str = "utf-8"
    _values: dict[str, str] | None = field(default=None, init=False, repr=False)

    def get(self, key: str) -> str | None:
        if self._values is None:
            try:
                self._values = parse_dotenv(self.path.read_text(encoding=self.encoding))
            except FileNotFoundError:
                self._values = {}
        return self._values.get(_prefixed(self.prefix, key))


@dataclass(slots=True)
class ConfigAdapter:
    """Composite over multiple sources (env -> .env); the first hit wins."""

    sources: tuple[ConfigSource, ...]

    def get(self, key: str, default: str | None = None) -> str | None:
        for source in self.sources:
            value = source.get(key)
            if value is not None:
                return value
        return default

    def get_int(self, key: str, fallback: int) -> int:
        return self._parse(key, int, fallback)

    def get_float(self, key: str, fallback: float) -> float:
        return self._parse(key, float, fallback)

    def get_choice(self, key: str, fallback: str) -> str:
        """Case-insensitive option value, lowercased."""
        return (self.get(key) or fallback).strip().lower()

    def _parse(self, key: str, parse: Callable[[str], T], fallback: T) -> T:
        raw = self.get(key)
        if not raw:
            return fallback
        try:
            return parse(raw)
        except ValueError:
            logger.warning(
                "config.invalid_value",
                extra={"extra": {"key": key, "value": raw, "fallback": fallback}},
            )
            return fallback


ENV_PREFIX = "TALENTFLOW_"


@lru_cache
def default_adapter() -> ConfigAdapter:
    """Environment variables, then the .env file named by DOTENV_PATH."""
    dotenv_path = Path(os.getenv("DOTENV_PATH", ".env"))
    return ConfigAdapter(
        (
            EnvConfigSource(prefix=ENV_PREFIX),
            DotEnvConfigSource(path=dotenv_path, prefix=ENV_PREFIX),
        )
    )
