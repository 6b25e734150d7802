"""
Expense routes for the optional financeTracking module.

The router is mounted only when financeTracking is enabled for the
process; require_module additionally checks the tenant's module set.
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from pmo.api.dependencies.modules import require_module
from pmo.constants.roles import WRITER_ROLES, TenantRole
from pmo.platform.errors import NotFoundError
from pmo.platform.rbac import require_tenant_role
from pmo.repositories.data_client import ScopedDataClient, get_scoped_data_client

logger = logging.getLogger(__name__)

MODULE_ID = "financeTracking"

router = APIRouter(
    prefix="/api/finance/expenses",
    tags=["finance"],
    dependencies=[Depends(require_module(MODULE_ID))],
)


class ExpenseCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    category: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., ge=0)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    incurred_on: Optional[date] = None
    project_id: Optional[str] = None


class ExpenseUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    amount: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    incurred_on: Optional[date] = None
    project_id: Optional[str] = None

    @field_validator("description", "category", "amount", "currency")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class ExpenseResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    description: str
    category: str
    amount: float
    currency: str
    incurred_on: Optional[date] = None
    project_id: Optional[str] = None
    created_at: Optional[datetime] = None


class ExpenseSummaryResponse(BaseModel):
    count: int
    total: float
    average: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    by_category: Dict[str, int]


def _check_project(db: ScopedDataClient, project_id: Optional[str]) -> None:
    if project_id and not db.projects.exists(project_id):
        raise NotFoundError("Project")


@router.get("", response_model=List[ExpenseResponse])
def list_expenses(
    category: Optional[str] = None,
    project_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    where = {}
    if category:
        where["category"] = category
    if project_id:
        where["project_id"] = project_id
    return db.expenses.find_many(where, order_by="-incurred_on", limit=limit, offset=offset)


@router.get("/summary", response_model=ExpenseSummaryResponse)
def expense_summary(
    category: Optional[str] = None,
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    return db.expenses.summary(category)


@router.get("/{expense_id}", response_model=ExpenseResponse)
def get_expense(expense_id: str, db: ScopedDataClient = Depends(get_scoped_data_client)):
    return db.expenses.get_by_id(expense_id)


@router.post("", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
def create_expense(
    body: ExpenseCreate,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    _check_project(db, body.project_id)
    return db.expenses.create(body.model_dump())


@router.patch("/{expense_id}", response_model=ExpenseResponse)
def update_expense(
    expense_id: str,
    body: ExpenseUpdate,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    data = body.model_dump(exclude_unset=True)
    _check_project(db, data.get("project_id"))
    return db.expenses.update(expense_id, data)


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(
    expense_id: str,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    db.expenses.delete(expense_id)
