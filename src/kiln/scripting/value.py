"""Script value model — the language-agnostic data crossing script boundaries.

Every backend converts its native results into these classes before they
reach the engine, and every value handed to a script is built from them.
No live reference into an interpreter ever escapes the backend that made it.

    >>> from_python(["a", 1])
    Sequence(items=(Text(value='a'), Number(value=1)))

Thread Safety:
    All values are frozen and safe to share across worker threads.

"""

from __future__ import annotations

import datetime as _dt
import math
from collections.abc import Iterator
from collections.abc import Mapping as AbcMapping
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Absent:
    """No value (nil, undefined, None)."""


ABSENT = Absent()


@dataclass(frozen=True, slots=True)
class Boolean:
    value: bool


@dataclass(frozen=True, slots=True)
class Number:
    value: int | float


@dataclass(frozen=True, slots=True)
class Text:
    value: str


@dataclass(frozen=True, slots=True)
class Sequence:
    items: tuple[ScriptValue, ...] = ()

    def __iter__(self) -> Iterator[ScriptValue]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True, slots=True, eq=False)
class Mapping:
    """Text-keyed mapping that remembers insertion order.

    Equality ignores order: Lua tables have none, so two backends producing
    the same keys and values must compare equal.
    """

    entries: tuple[tuple[str, ScriptValue], ...] = ()

    def __post_init__(self) -> None:
        keys = [key for key, _ in self.entries]
        if len(set(keys)) != len(keys):
            msg = f"duplicate keys in mapping: {sorted(k for k in set(keys) if keys.count(k) > 1)}"
            raise ValueError(msg)

    def get(self, key: str, default: ScriptValue = ABSENT) -> ScriptValue:
        for k, v in self.entries:
            if k == key:
                return v
        return default

    def keys(self) -> list[str]:
        return [k for k, _ in self.entries]

    def __contains__(self, key: object) -> bool:
        return any(k == key for k, _ in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return dict(self.entries) == dict(other.entries)

    def __hash__(self) -> int:
        return hash(frozenset(self.entries))


type ScriptValue = Absent | Boolean | Number | Text | Sequence | Mapping

_SCALARS = (Absent, Boolean, Number, Text, Sequence, Mapping)


def is_script_value(obj: object) -> bool:
    return isinstance(obj, _SCALARS)


def kind_of(value: ScriptValue) -> str:
    """Return the variant name of *value* (used in error messages)."""
    match value:
        case Absent():
            return "absent"
        case Boolean():
            return "boolean"
        case Number():
            return "number"
        case Text():
            return "text"
        case Sequence():
            return "sequence"
        case Mapping():
            return "mapping"
    return type(value).__name__


def from_python(obj: Any) -> ScriptValue:
    """Build a script value from plain Python data.

    Raises:
        TypeError: If *obj* (or anything nested in it) has no script
            representation.

    """
    if obj is None:
        return ABSENT
    if is_script_value(obj):
        return obj
    # bool is a subclass of int
    if isinstance(obj, bool):
        return Boolean(obj)
    if isinstance(obj, int):
        return Number(obj)
    if isinstance(obj, float):
        if not math.isfinite(obj):
            msg = f"cannot represent non-finite number {obj!r} as a script value"
            raise TypeError(msg)
        return Number(obj)
    if isinstance(obj, str):
        return Text(obj)
    if isinstance(obj, (_dt.date, _dt.datetime, _dt.time)):
        return Text(obj.isoformat())
    if isinstance(obj, AbcMapping):
        entries = []
        for key, value in obj.items():
            if not isinstance(key, str):
                msg = f"mapping keys must be text, got {type(key).__name__}"
                raise TypeError(msg)
            entries.append((key, from_python(value)))
        return Mapping(tuple(entries))
    if isinstance(obj, (list, tuple)):
        return Sequence(tuple(from_python(item) for item in obj))
    msg = f"cannot represent {type(obj).__name__} as a script value"
    raise TypeError(msg)


def to_python(value: ScriptValue) -> Any:
    """Convert a script value into plain Python data."""
    match value:
        case Absent():
            return None
        case Boolean(value=v) | Number(value=v) | Text(value=v):
            return v
        case Sequence(items=items):
            return [to_python(item) for item in items]
        case Mapping(entries=entries):
            return {key: to_python(item) for key, item in entries}
    msg = f"not a script value: {value!r}"
    raise TypeError(msg)
