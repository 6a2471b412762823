"""Enums for the auditing core."""
from enum import Enum


class AuditAction(str, Enum):
    """The three lifecycle events that produce an audit."""
    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
