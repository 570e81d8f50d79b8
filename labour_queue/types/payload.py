"""
Labour payload sanitizing.

Payloads are persisted as JSON, so they may only hold scalars, sequences
and mappings. Every value is classified into a PayloadKind and opaque
branches are pruned from their parent container.
"""

from collections.abc import Mapping, Sequence
from enum import StrEnum
from typing import Any

Payload = dict[str, Any] | list[Any]

_SCALAR_TYPES = (str, int, float, bool, type(None))


class PayloadKind(StrEnum):
    """Variant tag of a payload value."""

    SCALAR = "scalar"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    OPAQUE = "opaque"


def classify(value: Any) -> PayloadKind:
    """
    Classify a value into its payload variant.

    Strings are scalars even though they are sequences; bytes are opaque.
    """
    if isinstance(value, _SCALAR_TYPES):
        return PayloadKind.SCALAR
    if isinstance(value, Mapping):
        return PayloadKind.MAPPING
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return PayloadKind.SEQUENCE
    return PayloadKind.OPAQUE


def _sanitize_mapping(data: Mapping) -> dict[str, Any]:
    # JSON objects only have string keys
    clean: dict[str, Any] = {}
    for key, value in data.items():
        if classify(key) is not PayloadKind.SCALAR:
            continue
        kind = classify(value)
        if kind is PayloadKind.OPAQUE:
            continue
        clean[key if isinstance(key, str) else str(key)] = _sanitize_value(value, kind)
    return clean


def _sanitize_sequence(data: Sequence) -> list[Any]:
    clean: list[Any] = []
    for value in data:
        kind = classify(value)
        if kind is PayloadKind.OPAQUE:
            continue
        clean.append(_sanitize_value(value, kind))
    return clean


def _sanitize_value(value: Any, kind: PayloadKind) -> Any:
    if kind is PayloadKind.MAPPING:
        return _sanitize_mapping(value)
    if kind is PayloadKind.SEQUENCE:
        return _sanitize_sequence(value)
    return value


def sanitize_payload(payload: Any) -> Payload:
    """
    Sanitize a payload so it contains no opaque object references.

    Scalars pass through, containers recurse and any other value is
    silently dropped from its parent. Scalar mapping keys become strings;
    entries with any other key are dropped. A top-level value that is not a
    container yields an empty mapping.

    Args:
        payload: The raw payload given by the producer.

    Returns:
        A dict or list holding only scalars and containers.
    """
    kind = classify(payload)
    if kind is PayloadKind.MAPPING:
        return _sanitize_mapping(payload)
    if kind is PayloadKind.SEQUENCE:
        return _sanitize_sequence(payload)
    return {}
