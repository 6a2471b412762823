"""
Turns SQLAlchemy flushes into audits.

Updates and destroys are captured in ``before_flush``: the primary key is
known and the pre-delete state can still be read. Creates are captured in
``after_flush``, once the INSERT has assigned the primary key. Audits added
there are written by the next flush, which ``Session.commit`` runs before
committing.
"""
from typing import Dict, Optional

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from audited.models.attributes import encode_value
from audited.models.audit import Audit
from audited.models.enums import AuditAction
from audited.registry import AuditRegistry, default_registry, record_identity, type_tag


class Auditor:
    """Writes one audit per create, update and destroy of an audited record."""

    def __init__(self, registry: Optional[AuditRegistry] = None):
        self.registry = registry or default_registry

    def install(self, target=Session):
        """Listen on a ``sessionmaker``, a ``Session`` subclass or ``Session`` itself."""
        event.listen(target, "before_flush", self.before_flush)
        event.listen(target, "after_flush", self.after_flush)
        return target

    def uninstall(self, target=Session):
        event.remove(target, "before_flush", self.before_flush)
        event.remove(target, "after_flush", self.after_flush)

    def before_flush(self, session, flush_context, instances):
        for record in list(session.dirty):
            if not self.registry.is_audited(type(record)):
                continue
            changes = self.update_changes(record)
            if changes:
                session.add(self.build(record, AuditAction.UPDATE, changes))

        for record in list(session.deleted):
            if self.registry.is_audited(type(record)):
                session.add(self.build(record, AuditAction.DESTROY, self.snapshot(record)))

    def after_flush(self, session, flush_context):
        for record in list(session.new):
            if self.registry.is_audited(type(record)):
                session.add(self.build(record, AuditAction.CREATE, self.snapshot(record)))

    def update_changes(self, record) -> Dict[str, list]:
        """Field -> [old, new] for every audited column changed on ``record``."""
        state = inspect(record)
        changes = {}
        for key in self.registry.options_for(type(record)).audited_columns:
            history = state.attrs[key].history
            if not history.has_changes():
                continue
            old = history.deleted[0] if history.deleted else None
            new = history.added[0] if history.added else None
            if old == new:
                continue
            changes[key] = [encode_value(old), encode_value(new)]
        return changes

    def snapshot(self, record) -> Dict[str, object]:
        """Field -> value for every audited column of ``record``."""
        return {
            key: encode_value(getattr(record, key))
            for key in self.registry.options_for(type(record)).audited_columns
        }

    def build(self, record, action: AuditAction, changes) -> Audit:
        audit = Audit(
            auditable_type=type_tag(type(record)),
            auditable_id=record_identity(record),
            action=action,
            audited_changes=changes,
        )

        associated_with = self.registry.options_for(type(record)).associated_with
        if associated_with:
            associated = getattr(record, associated_with, None)
            if associated is not None:
                audit.associated_type = type_tag(type(associated))
                audit.associated_id = record_identity(associated)

        comment = getattr(record, "audit_comment", None)
        if comment is not None:
            audit.comment = comment
            record.audit_comment = None
        return audit
