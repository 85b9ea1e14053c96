"""Audit trail: pre-action records, result patches and exports."""

from modguard.audit.models import AuditFilters, AuditLogEntry, AuditPage
from modguard.audit.store import AuditStore
from modguard.audit.trail import AuditTrail

__all__ = ["AuditFilters", "AuditLogEntry", "AuditPage", "AuditStore", "AuditTrail"]
