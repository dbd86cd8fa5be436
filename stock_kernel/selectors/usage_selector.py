"""
Module: stock_kernel.selectors.usage_selector
Responsibility: Read-only access to the usage ledger for analytics.
Architecture position: Kernel > Selectors.
"""

from __future__ import annotations

from datetime import date

from sqlalchemy import select

from stock_kernel.domain.dtos import UsageEntryInfo
from stock_kernel.models.usage import UsageEntry
from stock_kernel.selectors.base import BaseSelector

_FRESH = {"populate_existing": True}


class UsageSelector(BaseSelector[UsageEntry]):
    def entries(
        self,
        start: date | None = None,
        end: date | None = None,
    ) -> list[UsageEntryInfo]:
        """Entries dated within the optional inclusive bounds, oldest first."""
        stmt = select(UsageEntry).order_by(UsageEntry.usage_date, UsageEntry.recorded_at)
        if start is not None:
            stmt = stmt.where(UsageEntry.usage_date >= start)
        if end is not None:
            stmt = stmt.where(UsageEntry.usage_date <= end)
        rows = self.session.execute(stmt, execution_options=_FRESH).scalars()
        return [UsageEntryInfo.from_model(e) for e in rows]
