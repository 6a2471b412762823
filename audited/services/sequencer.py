"""
Version numbering for audits.

A create is always version 1. Anything else is one past the highest version
already known for the same auditable identity: stored rows, read right
before the insert, and audits inserted by the same flush. Creates are queued
after the flush that inserts their record, so a create and a later update or
destroy of that record can land in one flush; SQLAlchemy stamps every audit
of a flush before inserting any of them, so the stored maximum alone would
hand both the same number.

Across sessions this is a read-then-write, not a counter: two writers
auditing the same record at the same moment can read the same maximum. The
unique constraint on (auditable_type, auditable_id, version) makes the
loser's insert fail with an integrity error instead of storing a duplicate.
Callers that need both writes to succeed must serialize them per record
themselves.
"""
from typing import Iterable

from sqlalchemy import Table, func, select

from audited.models.enums import AuditAction


class VersionSequencer:
    """Assigns the next version for an audit about to be inserted."""

    def __init__(self, table: Table):
        self.table = table

    def next_version(self, connection, audit, pending: Iterable = ()) -> int:
        """``pending`` holds the other audits of the flush inserting ``audit``."""
        if audit.action == AuditAction.CREATE:
            return 1
        stored = self.current_version(connection, audit.auditable_type, audit.auditable_id)
        return max(stored, self.pending_version(audit, pending)) + 1

    def current_version(self, connection, auditable_type: str, auditable_id: str) -> int:
        """Highest stored version for the identity, 0 if there is none."""
        current = connection.scalar(
            select(func.max(self.table.c.version)).where(
                self.table.c.auditable_type == auditable_type,
                self.table.c.auditable_id == auditable_id,
            )
        )
        return current or 0

    def pending_version(self, audit, pending: Iterable) -> int:
        """Highest version among not-yet-inserted audits of the same identity.

        Flush order within one mapper is not guaranteed, so a pending create
        counts as 1 whether or not it has been stamped yet.
        """
        highest = 0
        for other in pending:
            if other is audit:
                continue
            if (other.auditable_type, other.auditable_id) != (audit.auditable_type, audit.auditable_id):
                continue
            if other.action == AuditAction.CREATE:
                highest = max(highest, 1)
            elif other.version is not None:
                highest = max(highest, other.version)
        return highest
