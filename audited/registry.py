"""Registry of the types the auditing core can resolve.

Audits store the auditable, associated and acting types as plain string
tags. The registry maps those tags back to classes, and keeps the set of
classes that opted in to auditing together with their options.
"""
import threading
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from sqlalchemy import event, inspect

from audited.errors import FrozenRecordError, UnknownTypeError
from audited.observability import get_logger

logger = get_logger(__name__)

# Columns left out of audits unless named in ``only``
DEFAULT_IGNORED_COLUMNS = frozenset({"created_at", "updated_at", "created_on", "updated_on"})


def type_tag(cls) -> str:
    """Return the tag stored in audits for ``cls``."""
    return getattr(cls, "__audit_type__", None) or cls.__name__


@dataclass(frozen=True)
class AuditOptions:
    """How one audited class is audited."""
    audited_columns: Tuple[str, ...]
    only: FrozenSet[str] = frozenset()
    except_: FrozenSet[str] = frozenset()
    associated_with: Optional[str] = None


class AuditRegistry:
    """Thread-safe mapping of type tag to class.

    ``register`` makes a class resolvable (for instance, a user model that is
    only ever an actor). ``audit`` also opts the class in to auditing.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._classes: Dict[str, type] = {}
        self._audited: Dict[str, AuditOptions] = {}

    def register(self, cls) -> type:
        tag = type_tag(cls)
        with self._lock:
            self._classes[tag] = cls
        return cls

    def audit(
        self,
        cls,
        only: Optional[Sequence[str]] = None,
        except_: Optional[Sequence[str]] = None,
        associated_with: Optional[str] = None,
    ) -> type:
        """Opt the mapped class ``cls`` in to auditing and return it."""
        tag = type_tag(cls)
        options = AuditOptions(
            audited_columns=tuple(_audited_columns(cls, only, except_)),
            only=frozenset(only or ()),
            except_=frozenset(except_ or ()),
            associated_with=associated_with,
        )
        _instrument(cls)
        with self._lock:
            self._classes[tag] = cls
            self._audited[tag] = options
        logger.debug("audited_class_registered", type=tag, columns=list(options.audited_columns))
        return cls

    def is_audited(self, cls) -> bool:
        return type_tag(cls) in self._audited

    def options_for(self, cls) -> AuditOptions:
        return self._audited[type_tag(cls)]

    @property
    def audited_class_names(self) -> List[str]:
        with self._lock:
            return sorted(self._audited)

    @property
    def audited_classes(self) -> List[type]:
        """Classes that opted in to auditing, in tag order."""
        with self._lock:
            return [self._classes[tag] for tag in sorted(self._audited)]

    def resolve(self, tag: str) -> type:
        try:
            return self._classes[tag]
        except KeyError:
            raise UnknownTypeError(tag) from None

    def find(self, session, tag: str, record_id):
        """Load the live record for a stored (tag, id) pair, or None."""
        cls = self.resolve(tag)
        return session.get(cls, coerce_identity(cls, record_id))


def _audited_columns(cls, only, except_) -> List[str]:
    mapper = inspect(cls)
    columns = [prop.key for prop in mapper.column_attrs]
    if only:
        only = set(only)
        return [key for key in columns if key in only]
    primary_keys = {mapper.get_property_by_column(c).key for c in mapper.primary_key}
    ignored = primary_keys | DEFAULT_IGNORED_COLUMNS | set(except_ or ())
    return [key for key in columns if key not in ignored]


def _refuse_when_frozen(target, value, oldvalue, initiator):
    if getattr(target, "frozen", False) is True:
        raise FrozenRecordError(target, initiator.key)
    return value


def _instrument(cls) -> None:
    # active_history makes the old value of an expired column load before it
    # is overwritten, so update diffs always carry it
    for prop in inspect(cls).column_attrs:
        attribute = getattr(cls, prop.key)
        if not event.contains(attribute, "set", _refuse_when_frozen):
            event.listen(attribute, "set", _refuse_when_frozen, active_history=True, retval=True)


def coerce_identity(cls, record_id):
    """Convert a stored string id to the primary key's Python type.

    Composite keys are stored comma-joined (see ``record_identity``) and come
    back as a tuple, one part per key column, as ``Session.get`` expects.
    """
    if record_id is None:
        return None
    columns = inspect(cls).primary_key
    if len(columns) == 1:
        return _coerce_part(columns[0], record_id)
    parts = record_id.split(",") if isinstance(record_id, str) else tuple(record_id)
    if len(parts) != len(columns):
        raise ValueError(f"{record_id!r} does not match the {len(columns)}-column key of {cls.__name__}")
    return tuple(_coerce_part(column, part) for column, part in zip(columns, parts))


def _coerce_part(column, record_id):
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return record_id
    if isinstance(record_id, python_type):
        return record_id
    return python_type(record_id)


def record_identity(record) -> Optional[str]:
    """Return the stored string id of a mapped instance."""
    identity = inspect(record).identity
    if identity is None:
        # Just inserted in this flush; the key is not registered yet
        identity = inspect(type(record)).primary_key_from_instance(record)
    if any(part is None for part in identity):
        return None
    return str(identity[0]) if len(identity) == 1 else ",".join(str(part) for part in identity)


default_registry = AuditRegistry()


def audited(
    cls=None,
    *,
    only: Optional[Sequence[str]] = None,
    except_: Optional[Sequence[str]] = None,
    associated_with: Optional[str] = None,
    registry: Optional[AuditRegistry] = None,
):
    """Class decorator opting a mapped class in to auditing.

    Usable bare (``@audited``) or with options (``@audited(except_=["password"])``).
    """
    registry = registry or default_registry

    def decorate(klass):
        return registry.audit(klass, only=only, except_=except_, associated_with=associated_with)

    if cls is not None:
        return decorate(cls)
    return decorate
