# -*- coding: utf-8 -*-
"""
backend/app/modules/billing/credits/__init__.py

Submódulo del ledger de créditos.

Contiene:
- Modelos ORM: AccountBalance, LedgerEntry
- Repositorios: AccountBalanceRepository, LedgerEntryRepository
- Servicio: Ledger (credit / debit / grant_bonus / get_balance / get_summary)
- Enums: LedgerEntryKind, CreditBucket

Autor: WedAI
Fecha: 2025-12-30
"""

from .models import (
    AccountBalance,
    LedgerEntry,
)
from .enums import (
    LedgerEntryKind,
    CreditBucket,
)
from .repositories import (
    AccountBalanceRepository,
    LedgerEntryRepository,
)
from .services import (
    Ledger,
    BalanceSnapshot,
    CreditSummary,
)

__all__ = [
    # Models
    "AccountBalance",
    "LedgerEntry",
    # Enums
    "LedgerEntryKind",
    "CreditBucket",
    # Repositories
    "AccountBalanceRepository",
    "LedgerEntryRepository",
    # Services
    "Ledger",
    "BalanceSnapshot",
    "CreditSummary",
]
