"""
The audit record: one row per audited create, update or destroy.

Audits are append-only. Nothing in this package updates or deletes a stored
audit; reconstruction and undo only ever read them.
"""
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Session, object_session, validates

from audited.database import Base
from audited.errors import DetachedAuditError, NotFoundError
from audited.models.attributes import (
    AttributeMap,
    assign_revision_attributes,
    reconstruct_attributes,
    snapshot_object,
)
from audited.models.enums import AuditAction
from audited.observability import get_logger
from audited.registry import default_registry, record_identity, type_tag
from audited.services.context import (
    current_actor,
    current_remote_address,
    current_request_uuid,
)
from audited.services.sequencer import VersionSequencer

logger = get_logger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class Audit(Base):
    """
    Immutable record of one change to an audited record.

    Invariants:
    - version is unique per (auditable_type, auditable_id) and increases in
      creation order; the first create is version 1
    - audited_changes maps field -> [old, new] for updates and field -> value
      for creates and destroys
    - once inserted, never edited or deleted
    """
    __tablename__ = "audits"
    __table_args__ = (
        UniqueConstraint("auditable_type", "auditable_id", "version", name="uq_audits_auditable_version"),
        Index("ix_audits_auditable", "auditable_type", "auditable_id"),
        Index("ix_audits_auditable_id_version", "auditable_id", "version"),
    )

    # Lookups of stored type tags go through this registry
    audit_registry = default_registry

    id = Column(String(36), primary_key=True, default=_new_id)
    auditable_type = Column(String, nullable=False)
    auditable_id = Column(String, nullable=False)
    associated_type = Column(String, nullable=True)
    associated_id = Column(String, nullable=True)

    # Actor: a record reference, an inline snapshot, a display name, or nothing
    user_id = Column(String, nullable=True)
    user_type = Column(String, nullable=True)
    username = Column(String, nullable=True)
    user_attributes = Column(JSON, nullable=True)

    action = Column(String, nullable=False)
    _audited_changes = Column("audited_changes", JSON, nullable=True)
    version = Column(Integer, nullable=False, default=0)
    comment = Column(String, nullable=True)
    remote_address = Column(String, nullable=True)
    request_uuid = Column(String, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    reconstruct_attributes = staticmethod(reconstruct_attributes)
    assign_revision_attributes = staticmethod(assign_revision_attributes)

    @validates("action")
    def _normalize_action(self, key, value):
        return value.value if isinstance(value, AuditAction) else value

    @property
    def audited_changes(self) -> AttributeMap:
        return AttributeMap(self._audited_changes or {})

    @audited_changes.setter
    def audited_changes(self, changes):
        self._audited_changes = dict(AttributeMap(changes or {}))

    # Query surface

    @classmethod
    def for_auditable(
        cls,
        session: Session,
        auditable_type: str,
        auditable_id,
        up_to_version: Optional[int] = None,
    ) -> List["Audit"]:
        """All audits for one auditable identity, oldest version first."""
        query = session.query(cls).filter(
            cls.auditable_type == auditable_type,
            cls.auditable_id == str(auditable_id),
        )
        if up_to_version is not None:
            query = query.filter(cls.version <= up_to_version)
        return query.order_by(cls.version.asc()).all()

    @classmethod
    def latest_for(cls, session: Session, auditable_type: str, auditable_id) -> Optional["Audit"]:
        return session.query(cls).filter(
            cls.auditable_type == auditable_type,
            cls.auditable_id == str(auditable_id),
        ).order_by(cls.version.desc()).first()

    # Diff extraction

    def new_attributes(self) -> AttributeMap:
        """Field -> value after this change.

        Updates take the second element of each pair. Creates and destroys
        already map each field to one value and are returned as they are.
        """
        attrs = AttributeMap()
        for attr, values in (self._audited_changes or {}).items():
            attrs[attr] = _pick(values, -1) if self.action == AuditAction.UPDATE else values
        return attrs

    def old_attributes(self) -> AttributeMap:
        """Field -> value before this change.

        Updates take the first element of each pair. Creates and destroys are
        returned unchanged, same as ``new_attributes``.
        """
        attrs = AttributeMap()
        for attr, values in (self._audited_changes or {}).items():
            attrs[attr] = _pick(values, 0) if self.action == AuditAction.UPDATE else values
        return attrs

    # Actor

    @property
    def user(self):
        """The actor: a record, a rebuilt row-less object, a display name or None.

        Record references are loaded through the audit's session; reading one
        off a detached audit raises ``DetachedAuditError``. A referenced record
        that has since been deleted reads back as ``username``. An unregistered
        ``user_type`` raises ``UnknownTypeError``.
        """
        if self.user_attributes:
            return self.audit_registry.resolve(self.user_type)(**self.user_attributes)
        if self.user_type:
            session = object_session(self)
            if session is None:
                raise DetachedAuditError(self, "user")
            record = self.audit_registry.find(session, self.user_type, self.user_id)
            if record is not None:
                return record
        return self.username

    @user.setter
    def user(self, user):
        """Accepts a mapped record, a row-less object, a display name or None."""
        self.user_id = None
        self.user_type = None
        self.username = None
        self.user_attributes = None
        if user is None:
            return
        if isinstance(user, str):
            self.username = user
            return
        self.user_type = type_tag(type(user))
        if inspect(type(user), raiseerr=False) is not None:
            self.user_id = record_identity(user)
            return
        user_id = getattr(user, "id", None)
        self.user_id = None if user_id is None else str(user_id)
        self.user_attributes = snapshot_object(user)

    def has_user(self) -> bool:
        return bool(self.user_id or self.user_type or self.username or self.user_attributes)

    # Live records

    @property
    def auditable(self):
        return self._load(self.auditable_type, self.auditable_id)

    @property
    def associated(self):
        if not self.associated_type:
            return None
        return self._load(self.associated_type, self.associated_id)

    def _load(self, tag: str, record_id):
        session = object_session(self)
        if session is None:
            raise DetachedAuditError(self, tag)
        record = self.audit_registry.find(session, tag, record_id)
        if record is None:
            raise NotFoundError(tag, record_id)
        return record

    # History

    def ancestors(self) -> List["Audit"]:
        """This audit and every earlier one for the same record."""
        from audited.services.reconstructor import RevisionReconstructor
        return RevisionReconstructor(object_session(self), self.audit_registry).ancestors(self)

    def revision(self):
        """What the audited record looked like as of this audit.

        A record that has since been destroyed comes back as a new, unsaved
        instance.
        """
        from audited.services.reconstructor import RevisionReconstructor
        return RevisionReconstructor(object_session(self), self.audit_registry).revision(self)

    def undo(self):
        from audited.services.undo import UndoEngine
        return UndoEngine(object_session(self), self.audit_registry).undo(self)

    def __repr__(self):
        return (
            f"<Audit {self.auditable_type}#{self.auditable_id} "
            f"v{self.version} {self.action}>"
        )


def _pick(values, index):
    if isinstance(values, (list, tuple)) and len(values) == 2:
        return values[index]
    return values


_sequencer = VersionSequencer(Audit.__table__)


@event.listens_for(Audit, "before_insert", propagate=True)
def _stamp_audit(mapper, connection, audit):
    """Fill in version, request metadata and actor right before insert."""
    session = object_session(audit)
    pending = []
    if session is not None:
        pending = [other for other in session.new if isinstance(other, Audit)]
    audit.version = _sequencer.next_version(connection, audit, pending)
    if audit.request_uuid is None:
        audit.request_uuid = current_request_uuid()
    if audit.remote_address is None:
        audit.remote_address = current_remote_address()
    if not audit.has_user():
        audit.user = current_actor()
    logger.debug(
        "audit_recorded",
        auditable_type=audit.auditable_type,
        auditable_id=audit.auditable_id,
        action=audit.action,
        version=audit.version,
    )
