"""Typed decoding of script values into Python records.

``decode(value, Target)`` checks a script value against a statically
described shape and builds the Python object, or raises ``DecodeError``
naming the first field that does not fit.  Records are dataclasses; their
field types come from ``typing.get_type_hints`` so modules using
``from __future__ import annotations`` work unchanged.
"""

from __future__ import annotations

import dataclasses
import functools
import types
import typing
from typing import Any, Literal, TypeVar, Union, get_args, get_origin

from kiln._errors import DecodeError
from kiln.scripting.value import (
    Absent,
    Boolean,
    Mapping,
    Number,
    ScriptValue,
    Sequence,
    Text,
    is_script_value,
    kind_of,
    to_python,
)

T = TypeVar("T")

_MISSING = dataclasses.MISSING


def decode(value: ScriptValue, target: type[T] | Any, *, field: str = "$") -> T:
    """Decode *value* into an instance of *target*.

    Args:
        value: Script value produced by a backend or by ``from_python``.
        target: A dataclass or a typing expression (``list[str]``,
            ``dict[str, int]``, ``str | None``...).
        field: Path used in error messages for the value itself.

    Raises:
        DecodeError: On the first shape mismatch.

    """
    return _decode(value, target, field)


def _decode(value: ScriptValue, target: Any, field: str) -> Any:
    if target is Any or target is object:
        return to_python(value)

    origin = get_origin(target)

    if origin is Union or origin is types.UnionType:
        return _decode_union(value, target, field)

    if origin is Literal:
        for candidate in get_args(target):
            if _literal_matches(value, candidate):
                return candidate
        raise DecodeError(field, _describe(target), _got(value))

    if origin in (list, tuple) or target in (list, tuple):
        return _decode_sequence(value, target, origin or target, field)

    if origin is dict or target is dict:
        return _decode_mapping(value, target, field)

    if dataclasses.is_dataclass(target) and isinstance(target, type):
        return _decode_record(value, target, field)

    if target is type(None):
        if isinstance(value, Absent):
            return None
        raise DecodeError(field, "absent", _got(value))

    if target is bool:
        if isinstance(value, Boolean):
            return value.value
        raise DecodeError(field, "bool", _got(value))

    if target is int:
        if isinstance(value, Number):
            number = value.value
            if isinstance(number, int):
                return number
            if number.is_integer():
                return int(number)
        raise DecodeError(field, "int", _got(value))

    if target is float:
        if isinstance(value, Number):
            return float(value.value)
        raise DecodeError(field, "float", _got(value))

    if target is str:
        if isinstance(value, Text):
            return value.value
        raise DecodeError(field, "str", _got(value))

    if isinstance(target, typing.TypeAliasType) and target.__name__ == "ScriptValue":
        return value

    msg = f"unsupported decode target: {target!r}"
    raise TypeError(msg)


def _decode_union(value: ScriptValue, target: Any, field: str) -> Any:
    options = get_args(target)
    if isinstance(value, Absent) and type(None) in options:
        return None
    for option in options:
        if option is type(None):
            continue
        try:
            return _decode(value, option, field)
        except DecodeError:
            continue
    raise DecodeError(field, _describe(target), _got(value))


def _decode_sequence(value: ScriptValue, target: Any, container: type, field: str) -> Any:
    args = get_args(target)
    if container is tuple and args and args[-1] is not Ellipsis:
        msg = f"fixed-length tuple targets are not supported: {target!r}"
        raise TypeError(msg)
    item_type = args[0] if args else Any

    if isinstance(value, Mapping) and len(value) == 0:
        items: tuple[ScriptValue, ...] = ()
    elif isinstance(value, Sequence):
        items = value.items
    else:
        raise DecodeError(field, _describe(target), _got(value))

    decoded = [_decode(item, item_type, f"{field}[{i}]") for i, item in enumerate(items)]
    return tuple(decoded) if container is tuple else decoded


def _decode_mapping(value: ScriptValue, target: Any, field: str) -> dict[str, Any]:
    args = get_args(target)
    value_type = args[1] if len(args) == 2 else Any
    if isinstance(value, Sequence) and len(value) == 0:
        return {}
    if not isinstance(value, Mapping):
        raise DecodeError(field, _describe(target), _got(value))
    return {key: _decode(item, value_type, f"{field}.{key}") for key, item in value.entries}


def _decode_record(value: ScriptValue, target: type, field: str) -> Any:
    if isinstance(value, Sequence) and len(value) == 0:
        value = Mapping()
    if not isinstance(value, Mapping):
        raise DecodeError(field, target.__name__, _got(value))

    hints = _type_hints(target)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(target):
        if not f.init:
            continue
        item = value.get(f.name)
        path = f"{field}.{f.name}"
        if isinstance(item, Absent):
            has_default = f.default is not _MISSING or f.default_factory is not _MISSING
            if has_default:
                continue
            if not _accepts_none(hints[f.name]):
                raise DecodeError(path, _describe(hints[f.name]), "absent")
        kwargs[f.name] = _decode(item, hints[f.name], path)
    return target(**kwargs)


@functools.cache
def _type_hints(target: type) -> dict[str, Any]:
    return typing.get_type_hints(target)


def _accepts_none(target: Any) -> bool:
    if target is Any or target is type(None):
        return True
    origin = get_origin(target)
    return (origin is Union or origin is types.UnionType) and type(None) in get_args(target)


def _got(value: ScriptValue) -> str:
    if not is_script_value(value):
        return type(value).__name__
    return kind_of(value)


def _literal_matches(value: ScriptValue, candidate: Any) -> bool:
    # bool is an int subclass; kinds must agree before values are compared
    match value:
        case Boolean(value=v):
            return type(candidate) is bool and candidate is v
        case Number(value=v):
            return type(candidate) in (int, float) and candidate == v
        case Text(value=v):
            return type(candidate) is str and candidate == v
        case Absent():
            return candidate is None
    return False


def _describe(target: Any) -> str:
    if target is type(None):
        return "absent"
    if target is Any:
        return "any"
    origin = get_origin(target)
    if origin is Union or origin is types.UnionType:
        return " | ".join(_describe(arg) for arg in get_args(target))
    if origin is Literal:
        return " | ".join(repr(arg) for arg in get_args(target))
    if origin is not None:
        args = ", ".join("..." if a is Ellipsis else _describe(a) for a in get_args(target))
        return f"{origin.__name__}[{args}]"
    return getattr(target, "__name__", repr(target))
