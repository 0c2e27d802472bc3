"""
Document Value Codec
====================

The document store speaks a small set of dynamically typed values.
This module gives them an explicit, exhaustive representation:

    Value = IntValue | FloatValue | BoolValue | StringValue | MapValue | ListValue

Why a tagged union instead of "Any"?
- Every supported type is listed in one place
- Unsupported types fail loudly at encode time
- Round-trips are lossless (bool never collapses into int)
"""

from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union

from ..errors import UnsupportedValueType


# ============================================================
# VALUE TYPES
# ============================================================

@dataclass(frozen=True)
class IntValue:
    value: int
    kind: str = "integer"


@dataclass(frozen=True)
class FloatValue:
    value: float
    kind: str = "float"


@dataclass(frozen=True)
class BoolValue:
    value: bool
    kind: str = "boolean"


@dataclass(frozen=True)
class StringValue:
    value: str
    kind: str = "string"


@dataclass(frozen=True)
class MapValue:
    """Nested mapping. Items are kept sorted by key so equal maps compare equal."""
    items: Tuple[Tuple[str, "Value"], ...]
    kind: str = "mapping"

    def get(self, key: str) -> "Value":
        for item_key, item_value in self.items:
            if item_key == key:
                return item_value
        raise KeyError(key)


@dataclass(frozen=True)
class ListValue:
    items: Tuple["Value", ...]
    kind: str = "sequence"


Value = Union[IntValue, FloatValue, BoolValue, StringValue, MapValue, ListValue]

VALUE_KINDS = ("integer", "float", "boolean", "string", "mapping", "sequence")


# ============================================================
# ENCODE / DECODE
# ============================================================

def to_value(obj: Any) -> Value:
    """
    Convert a plain Python object into a Value.

    Raises:
        UnsupportedValueType: for None, bytes, sets, arbitrary objects
            and mappings with non-string keys

    Example:
        to_value({"startMinutes": 1260})
        # MapValue(items=(("startMinutes", IntValue(1260)),))
    """
    # bool is a subclass of int, so it must be checked first
    if isinstance(obj, bool):
        return BoolValue(obj)
    if isinstance(obj, int):
        return IntValue(obj)
    if isinstance(obj, float):
        return FloatValue(obj)
    if isinstance(obj, str):
        return StringValue(obj)
    if isinstance(obj, dict):
        items = []
        for key, item in obj.items():
            if not isinstance(key, str):
                raise UnsupportedValueType(
                    f"Mapping keys must be strings, got {type(key).__name__}"
                )
            items.append((key, to_value(item)))
        return MapValue(tuple(sorted(items, key=lambda pair: pair[0])))
    if isinstance(obj, (list, tuple)):
        return ListValue(tuple(to_value(item) for item in obj))
    raise UnsupportedValueType(f"Unsupported value type: {type(obj).__name__}")


def from_value(value: Value) -> Any:
    """Convert a Value back into plain Python (dict, list, scalars)."""
    if isinstance(value, (IntValue, FloatValue, BoolValue, StringValue)):
        return value.value
    if isinstance(value, MapValue):
        return {key: from_value(item) for key, item in value.items}
    if isinstance(value, ListValue):
        return [from_value(item) for item in value.items]
    raise UnsupportedValueType(f"Not a document value: {type(value).__name__}")


def copy_plain(obj: Any) -> Any:
    """
    Deep snapshot of a plain payload, validated through the codec.

    Used for approval snapshots: the stored copy shares nothing
    with the proposal it was taken from.
    """
    return from_value(to_value(obj))


def kind_of(obj: Any) -> str:
    """Name of the value kind a plain object encodes to."""
    return to_value(obj).kind


def encode_mapping(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Validate and copy a top-level payload mapping."""
    value = to_value(fields)
    if not isinstance(value, MapValue):
        raise UnsupportedValueType("Payload must be a mapping")
    return from_value(value)

