"""SQLAlchemy ORM models for the vehicle expertise backend.

All models are exported from this module for convenient imports:
    from expertise.models import CreditAccount, CreditTransaction, Report

Models are organized by domain:
- credit.py: CreditAccount, CreditTransaction, TransactionKind (ledger)
- report.py: Report (analysis lifecycle)
"""

from expertise.models.base import Base, TimestampMixin
from expertise.models.credit import CreditAccount, CreditTransaction, TransactionKind
from expertise.models.report import Report

__all__ = [
    "Base",
    "TimestampMixin",
    "CreditAccount",
    "CreditTransaction",
    "TransactionKind",
    "Report",
]
