"""
Attribute maps and the helpers that move audited values in and out of records.

Audited changes are stored as JSON. ``encode_value`` turns column values into
JSON-safe ones on the way in; ``decode_value`` uses the target column's
Python type to turn them back on the way out.
"""
import uuid
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import inspect
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import QueryableAttribute
from sqlalchemy.orm.attributes import set_committed_value

from pydantic import BaseModel


def normalize_key(key) -> str:
    """Map a string, enum member or instrumented attribute to its field name."""
    if isinstance(key, str) and not isinstance(key, Enum):
        return key
    if isinstance(key, Enum):
        return str(key.value)
    name = getattr(key, "key", None)
    if isinstance(name, str):
        return name
    return str(key)


class AttributeMap(dict):
    """A dict of field name to value that accepts any spelling of the field.

    ``attrs["name"]``, ``attrs[User.name]`` and ``attrs[Field.NAME]`` all reach
    the same entry. Keys are always stored as plain strings.
    """

    def __init__(self, *args, **kwargs):
        super().__init__()
        self.update(*args, **kwargs)

    def __getitem__(self, key):
        return super().__getitem__(normalize_key(key))

    def __setitem__(self, key, value):
        super().__setitem__(normalize_key(key), value)

    def __delitem__(self, key):
        super().__delitem__(normalize_key(key))

    def __contains__(self, key):
        return super().__contains__(normalize_key(key))

    def get(self, key, default=None):
        return super().get(normalize_key(key), default)

    def pop(self, key, *default):
        return super().pop(normalize_key(key), *default)

    def setdefault(self, key, default=None):
        return super().setdefault(normalize_key(key), default)

    def update(self, *args, **kwargs):
        for other in args:
            pairs = other.items() if hasattr(other, "items") else other
            for key, value in pairs:
                self[key] = value
        for key, value in kwargs.items():
            self[key] = value

    def copy(self):
        return AttributeMap(self)

    def __repr__(self):
        return f"AttributeMap({dict.__repr__(self)})"


def encode_value(value):
    """Make a column value safe to store inside a JSON column."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [encode_value(item) for item in value]
    if isinstance(value, dict):
        return {normalize_key(k): encode_value(v) for k, v in value.items()}
    return value


def decode_value(python_type: Optional[type], value):
    """Turn a stored JSON value back into ``python_type`` where it was encoded."""
    if value is None or python_type is None:
        return value
    if isinstance(value, python_type):
        return value
    if issubclass(python_type, Enum):
        return python_type(value)
    if not isinstance(value, str):
        if python_type is Decimal and isinstance(value, (int, float)):
            return Decimal(str(value))
        return value
    if issubclass(python_type, datetime):
        return datetime.fromisoformat(value)
    if issubclass(python_type, date):
        return date.fromisoformat(value)
    if issubclass(python_type, time):
        return time.fromisoformat(value)
    if python_type is Decimal:
        return Decimal(value)
    if python_type is uuid.UUID:
        return uuid.UUID(value)
    return value


def column_python_type(mapper, key: str) -> Optional[type]:
    try:
        return mapper.column_attrs[key].columns[0].type.python_type
    except NotImplementedError:
        return None


def decode_attributes(cls, attributes) -> Dict[str, Any]:
    """Decode every mapped column in ``attributes`` for use on ``cls``."""
    mapper = inspect(cls)
    decoded = {}
    for key, value in attributes.items():
        key = normalize_key(key)
        if key in mapper.column_attrs:
            value = decode_value(column_python_type(mapper, key), value)
        decoded[key] = value
    return decoded


def snapshot_object(actor) -> Dict[str, Any]:
    """Inline attribute snapshot of an object that has no database row."""
    if isinstance(actor, BaseModel):
        return actor.model_dump(mode="json")
    if is_dataclass(actor):
        return encode_value(asdict(actor))
    return encode_value({k: v for k, v in vars(actor).items() if not k.startswith("_")})


def copy_columns(record, include_primary_key: bool = False):
    """New transient instance carrying ``record``'s column values.

    Values are written as committed state, so validators and set events on
    the target class do not run a second time.
    """
    mapper = inspect(type(record))
    primary_keys = {mapper.get_property_by_column(c).key for c in mapper.primary_key}
    copy = type(record)()
    for prop in mapper.column_attrs:
        if prop.key in primary_keys and not include_primary_key:
            continue
        set_committed_value(copy, prop.key, getattr(record, prop.key))
    return copy


def reconstruct_attributes(audits: Iterable) -> AttributeMap:
    """Fold audits' new attributes oldest first; later values win."""
    attributes = AttributeMap()
    for audit in audits:
        attributes.update(audit.new_attributes())
        attributes["audit_version"] = audit.version
    return attributes


def is_frozen(record) -> bool:
    return getattr(record, "frozen", False) is True


def duplicate(record):
    dup = getattr(record, "dup", None)
    if callable(dup):
        return dup()
    return copy_columns(record)


_MISSING = object()


def _class_attribute(cls, name: str):
    for klass in cls.__mro__:
        if name in vars(klass):
            return vars(klass)[name]
    return _MISSING


def _assign(record, attr: str, value) -> bool:
    mapper = inspect(type(record), raiseerr=False)
    if mapper is not None and attr in mapper.column_attrs:
        set_committed_value(record, attr, decode_value(column_python_type(mapper, attr), value))
        return True

    descriptor = _class_attribute(type(record), attr)
    if descriptor is _MISSING:
        if attr in getattr(record, "__dict__", {}):
            setattr(record, attr, value)
            return True
        return False
    if isinstance(descriptor, (property, hybrid_property)):
        if descriptor.fset is None:
            return False
        setattr(record, attr, value)
        return True
    if isinstance(descriptor, (QueryableAttribute, staticmethod, classmethod)) or callable(descriptor):
        return False
    setattr(record, attr, value)
    return True


def assign_revision_attributes(record, attributes) -> Any:
    """Write ``attributes`` onto ``record`` and return the record written to.

    Frozen records are duplicated first. Mapped columns are written directly,
    other fields go through their setter, and fields the record has no place
    for are skipped.
    """
    if is_frozen(record):
        record = duplicate(record)
    for attr, value in attributes.items():
        _assign(record, normalize_key(attr), value)
    return record
