"""Visit ledger services."""

from .ledger import LedgerNotice, VisitLedger, visit_duration_minutes

__all__ = ["LedgerNotice", "VisitLedger", "visit_duration_minutes"]
