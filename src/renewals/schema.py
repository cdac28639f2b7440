"""Translation between the two wire conventions and the canonical record.

The backend has returned renewals under two key sets over its lifetime:

- ``legacy``: ``item_name``, ``category``, ``vendor``, ``reminder_days_before``
- ``current``: ``service_name``, ``service_type``, ``provider``, ``reminder_type``

Both are supported permanently.  The translation is driven by
:data:`FIELD_MAPPINGS`, so adding a third convention means adding a key to
each mapping's ``keys`` and a name to :data:`SHAPE_PRECEDENCE`.

Reading prefers the ``current`` key and falls back to ``legacy`` when the
current key is absent, None or an empty string.  Keys that belong to no
mapping are kept in ``RenewalRecord.extra`` and written back unchanged.
"""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from renewals.dates import format_for_wire
from renewals.models import RenewalKind, RenewalRecord, RenewalStatus, ReminderType

logger = logging.getLogger(__name__)

WireShape = Literal["legacy", "current"]

WIRE_SHAPES: tuple[str, ...] = ("legacy", "current")

# Read order when a payload carries more than one convention.
SHAPE_PRECEDENCE: tuple[str, ...] = ("current", "legacy")


# ---------------------------------------------------------------------------
# Value readers (wire -> canonical); none of them raise
# ---------------------------------------------------------------------------


def _read_text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _read_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _read_date(value: Any) -> str | None:
    if value is None:
        return None
    return format_for_wire(value)


def _read_cost(value: Any) -> float | None:
    if value is None:
        return None
    if isinstance(value, int | float):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            number = math.nan
    else:
        number = math.nan
    if math.isnan(number):
        logger.debug("Coercing unparseable cost %r to 0", value)
        return 0.0
    return number


def _read_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        logger.debug("Dropping non-numeric reminder lead time %r", value)
        return None


_TRUE_STRINGS = frozenset({"true", "1", "yes"})
_FALSE_STRINGS = frozenset({"false", "0", "no"})


def _read_flag(value: Any) -> bool | None:
    if value is None or isinstance(value, bool):
        return value
    if isinstance(value, int | float):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    logger.debug("Dropping unreadable flag %r", value)
    return None


def _enum_reader(enum_type: type[enum.Enum]) -> Callable[[Any], Any]:
    def _read(value: Any) -> Any:
        if value is None or value == "":
            return None
        try:
            return enum_type(str(value).strip().lower())
        except ValueError:
            logger.warning("Ignoring unknown %s value %r", enum_type.__name__, value)
            return None

    return _read


def _write_enum(value: Any) -> Any:
    return value.value if hasattr(value, "value") else value


def _write_cost(value: Any) -> float:
    return float(value)


def _identity(value: Any) -> Any:
    return value


# ---------------------------------------------------------------------------
# Mapping table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FieldMapping:
    """How one canonical field is named and converted in each wire shape.

    ``keys`` maps a shape name to its wire key.  A field present in only one
    shape (the two reminder representations) is written under that key
    whenever the record holds a value, whatever shape is targeted, since the
    other shape has nothing it could be translated into.
    """

    field: str
    keys: Mapping[str, str]
    read: Callable[[Any], Any] = _identity
    write: Callable[[Any], Any] = _identity

    def source_keys(self) -> list[str]:
        ordered: list[str] = []
        for shape in SHAPE_PRECEDENCE:
            key = self.keys.get(shape)
            if key is not None and key not in ordered:
                ordered.append(key)
        return ordered

    def target_key(self, shape: str) -> str | None:
        key = self.keys.get(shape)
        if key is not None:
            return key
        own_keys = set(self.keys.values())
        if len(own_keys) == 1:
            return next(iter(own_keys))
        return None


def _same_in_all(key: str) -> dict[str, str]:
    return {shape: key for shape in WIRE_SHAPES}


FIELD_MAPPINGS: tuple[FieldMapping, ...] = (
    FieldMapping("id", _same_in_all("id"), read=_read_id),
    FieldMapping("owner_id", _same_in_all("user_id"), read=_read_id),
    FieldMapping(
        "name",
        {"legacy": "item_name", "current": "service_name"},
        read=_read_text,
    ),
    FieldMapping(
        "kind",
        {"legacy": "category", "current": "service_type"},
        read=_enum_reader(RenewalKind),
        write=_write_enum,
    ),
    FieldMapping(
        "provider",
        {"legacy": "vendor", "current": "provider"},
        read=_read_text,
    ),
    FieldMapping("start_date", _same_in_all("start_date"), read=_read_date, write=format_for_wire),
    FieldMapping("end_date", _same_in_all("end_date"), read=_read_date, write=format_for_wire),
    FieldMapping("cost", _same_in_all("cost"), read=_read_cost, write=_write_cost),
    FieldMapping(
        "status",
        _same_in_all("status"),
        read=_enum_reader(RenewalStatus),
        write=_write_enum,
    ),
    FieldMapping("status_pinned", _same_in_all("status_pinned"), read=_read_flag),
    FieldMapping("notes", _same_in_all("notes"), read=_read_text),
    FieldMapping(
        "reminder_days_before",
        {"legacy": "reminder_days_before"},
        read=_read_int,
    ),
    FieldMapping(
        "reminder_type",
        {"current": "reminder_type"},
        read=_enum_reader(ReminderType),
        write=_write_enum,
    ),
)

KNOWN_WIRE_KEYS: frozenset[str] = frozenset(
    key for mapping in FIELD_MAPPINGS for key in mapping.keys.values()
)


def _is_absent(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def to_canonical(raw: Mapping[str, Any] | None) -> RenewalRecord:
    """Build a :class:`RenewalRecord` from a payload in either wire shape.

    Never raises on a mapping: unreadable values become None (or ``""`` for
    dates, ``0.0`` for costs) and unknown keys are kept in ``extra``.
    """
    if not isinstance(raw, Mapping):
        if raw is not None:
            logger.warning("Expected a mapping for a renewal payload, got %s", type(raw).__name__)
        return RenewalRecord()

    values: dict[str, Any] = {}
    for mapping in FIELD_MAPPINGS:
        source = None
        for key in mapping.source_keys():
            if key in raw and not _is_absent(raw[key]):
                source = raw[key]
                break
        values[mapping.field] = mapping.read(source)

    extra = {str(key): value for key, value in raw.items() if key not in KNOWN_WIRE_KEYS}
    return RenewalRecord(**values, extra=extra)


def to_wire(
    record: RenewalRecord | Mapping[str, Any],
    target_shape: WireShape = "current",
) -> dict[str, Any]:
    """Serialize *record* using the key set of *target_shape*.

    *record* may be a full :class:`RenewalRecord` or a partial mapping of
    canonical field names.  Fields holding None are omitted; preserved
    ``extra`` keys are emitted as they were received.
    """
    if target_shape not in WIRE_SHAPES:
        raise ValueError(f"Unknown wire shape {target_shape!r}. Must be one of {WIRE_SHAPES}")

    if not isinstance(record, RenewalRecord):
        record = RenewalRecord.model_validate(dict(record))

    payload: dict[str, Any] = {}
    for key, value in record.extra.items():
        if key not in KNOWN_WIRE_KEYS:
            payload[key] = value

    for mapping in FIELD_MAPPINGS:
        value = getattr(record, mapping.field)
        if value is None:
            continue
        key = mapping.target_key(target_shape)
        if key is None:
            continue
        payload[key] = mapping.write(value)

    return payload
