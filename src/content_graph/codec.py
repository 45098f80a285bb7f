"""Dataclass <-> JSON-like payload conversion driven by field type hints.

Field names on the wire come from ``field(metadata={"key": ...})`` when present,
otherwise from the attribute name. Decoding walks the resolved type hints, so
nested dataclasses, ``list[...]`` and ``X | None`` are rebuilt faithfully.
"""

from __future__ import annotations

import types
from collections.abc import Mapping
from dataclasses import fields, is_dataclass
from functools import cache
from typing import Any, Union, get_args, get_origin, get_type_hints


class ShapeError(ValueError):
    """Payload value does not match the declared field type."""

    def __init__(self, message: str, path: str) -> None:
        super().__init__(f"{path}: {message}" if path else message)
        self.message = message
        self.path = path


def wire_key(field_obj: Any) -> str:
    return field_obj.metadata.get("key", field_obj.name)


@cache
def _hints(cls: type) -> dict[str, Any]:
    return get_type_hints(cls)


def encode(value: Any, *, drop_none: bool = False) -> Any:
    """Convert dataclass graphs into plain dict/list payloads."""

    if is_dataclass(value) and not isinstance(value, type):
        payload: dict[str, Any] = {}
        for field_obj in fields(value):
            if field_obj.metadata.get("transient"):
                continue
            item = getattr(value, field_obj.name)
            if drop_none and item is None:
                continue
            payload[wire_key(field_obj)] = encode(item, drop_none=drop_none)
        return payload
    if isinstance(value, list | tuple):
        return [encode(item, drop_none=drop_none) for item in value]
    if isinstance(value, Mapping):
        return {str(key): encode(item, drop_none=drop_none) for key, item in value.items()}
    return value


def decode(cls: type, payload: Any, *, strict: bool = False, path: str = "") -> Any:
    """Build ``cls`` from a payload produced by :func:`encode` (or by a client).

    With ``strict`` enabled every recognized field is shape-checked and a
    :class:`ShapeError` is raised on mismatch. Unknown keys are always ignored.
    """

    if not isinstance(payload, Mapping):
        raise ShapeError(f"expected an object, got {type(payload).__name__}", path)
    hints = _hints(cls)
    kwargs: dict[str, Any] = {}
    for field_obj in fields(cls):
        if not field_obj.init or field_obj.metadata.get("transient"):
            continue
        key = wire_key(field_obj)
        if key not in payload:
            continue
        child_path = f"{path}.{key}" if path else key
        kwargs[field_obj.name] = _decode_value(
            hints[field_obj.name],
            payload[key],
            strict=strict,
            path=child_path,
        )
    return cls(**kwargs)


def _decode_value(hint: Any, value: Any, *, strict: bool, path: str) -> Any:  # noqa: PLR0911
    if value is None:
        return None
    origin = get_origin(hint)
    if origin is Union or origin is types.UnionType:
        candidates = [arg for arg in get_args(hint) if arg is not type(None)]
        if len(candidates) == 1:
            return _decode_value(candidates[0], value, strict=strict, path=path)
        for candidate in candidates:
            if _accepts(candidate, value):
                return _decode_value(candidate, value, strict=strict, path=path)
        if strict:
            raise ShapeError(f"unexpected value of type {type(value).__name__}", path)
        return value
    if origin is list:
        if not isinstance(value, list | tuple):
            if strict:
                raise ShapeError(f"expected a list, got {type(value).__name__}", path)
            return []
        (item_hint,) = get_args(hint) or (Any,)
        return [
            _decode_value(item_hint, item, strict=strict, path=f"{path}[{index}]")
            for index, item in enumerate(value)
        ]
    if origin is dict:
        if strict and not isinstance(value, Mapping):
            raise ShapeError(f"expected an object, got {type(value).__name__}", path)
        return dict(value) if isinstance(value, Mapping) else value
    if isinstance(hint, type) and is_dataclass(hint):
        return decode(hint, value, strict=strict, path=path)
    if strict and hint in (str, bool, int, float):
        return _check_scalar(hint, value, path)
    return value


def _accepts(hint: Any, value: Any) -> bool:
    origin = get_origin(hint)
    if origin is list:
        return isinstance(value, list | tuple)
    if origin is dict:
        return isinstance(value, Mapping)
    if isinstance(hint, type) and is_dataclass(hint):
        return isinstance(value, Mapping)
    if hint is bool:
        return isinstance(value, bool)
    if hint in (int, float):
        return isinstance(value, int | float) and not isinstance(value, bool)
    if hint is str:
        return isinstance(value, str)
    return True


def _check_scalar(hint: type, value: Any, path: str) -> Any:
    if hint is bool:
        if not isinstance(value, bool):
            raise ShapeError(f"expected a boolean, got {type(value).__name__}", path)
        return value
    if hint is str:
        if not isinstance(value, str):
            raise ShapeError(f"expected a string, got {type(value).__name__}", path)
        return value
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise ShapeError(f"expected a number, got {type(value).__name__}", path)
    return hint(value)
