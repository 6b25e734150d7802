"""Expense repository for finance tracking."""

from typing import Any, Dict, Optional

from pmo.models.expense import Expense
from pmo.repositories.base_repo import TenantScopedRepository


class ExpenseRepository(TenantScopedRepository[Expense]):
    model = Expense
    resource_name = "Expense"

    def summary(self, category: Optional[str] = None) -> Dict[str, Any]:
        """Totals over the tenant's expenses plus per-category row counts."""
        where = {"category": category} if category else None
        totals = self.aggregate("amount", where)
        by_category = {name: total for name, total in self.group_by("category", where)}
        return {
            "count": totals["count"],
            "total": float(totals["sum"] or 0),
            "average": float(totals["avg"]) if totals["avg"] is not None else None,
            "min": totals["min"],
            "max": totals["max"],
            "by_category": by_category,
        }
