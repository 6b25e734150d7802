"""
Request-facing data client.

ScopedDataClient is what route handlers receive instead of a Session.
It only exposes tenant-pre-scoped repositories built on a tenant-scoped
session; there is no attribute that yields an unscoped query builder.

Usage:
    @router.get("/projects")
    def list_projects(db: ScopedDataClient = Depends(get_scoped_data_client)):
        return db.projects.find_many()
"""

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from pmo.database.session import get_scoped_db_session
from pmo.repositories.account_repo import AccountRepository
from pmo.repositories.client_repo import ClientRepository
from pmo.repositories.expense_repo import ExpenseRepository
from pmo.repositories.project_repo import ProjectRepository


class ScopedDataClient:
    """Tenant-scoped repositories sharing one scoped session."""

    __slots__ = ("_session", "clients", "projects", "accounts", "expenses")

    def __init__(self, session: Session):
        self._session = session
        self.clients = ClientRepository(session)
        self.projects = ProjectRepository(session)
        self.accounts = AccountRepository(session)
        self.expenses = ExpenseRepository(session)


def get_scoped_data_client(
    session: Session = Depends(get_scoped_db_session),
) -> Generator[ScopedDataClient, None, None]:
    """FastAPI dependency yielding a ScopedDataClient for the request."""
    yield ScopedDataClient(session)
