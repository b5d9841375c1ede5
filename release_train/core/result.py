"""Result type for explicit error handling.

Every step of a release run can fail for reasons outside our control (a
network hiccup, a rejected push, a red workflow). Instead of raising, the
fallible functions return ``Ok(value)`` or ``Err(error)`` and the caller
decides whether to stop.

Usage:
    def pick_version(text: str) -> Result[str, str]:
        if not text:
            return Err("empty manifest")
        return Ok(text)

    match pick_version(raw):
        case Ok(version):
            print(f"version: {version}")
        case Err(error):
            print(f"failed: {error}")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeAlias, TypeVar

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome carrying ``value``."""

    value: T

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failed outcome carrying ``error``."""

    error: E

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result: TypeAlias = Ok[T] | Err[E]
