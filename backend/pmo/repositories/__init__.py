"""Repository layer with tenant isolation enforcement."""

from pmo.repositories.base_repo import (
    TenantScopedRepository,
    RecordNotFoundError,
)
from pmo.repositories.client_repo import ClientRepository
from pmo.repositories.project_repo import ProjectRepository
from pmo.repositories.account_repo import AccountRepository
from pmo.repositories.expense_repo import ExpenseRepository

__all__ = [
    "TenantScopedRepository",
    "RecordNotFoundError",
    "ClientRepository",
    "ProjectRepository",
    "AccountRepository",
    "ExpenseRepository",
]
