"""CRM account routes."""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from pmo.api.dependencies.modules import require_module
from pmo.constants.roles import WRITER_ROLES, TenantRole
from pmo.models.account import AccountType
from pmo.platform.rbac import require_tenant_role
from pmo.repositories.data_client import ScopedDataClient, get_scoped_data_client

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/crm/accounts",
    tags=["crm"],
    dependencies=[Depends(require_module("crmAccounts"))],
)


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    website: Optional[str] = Field(None, max_length=255)
    type: AccountType = AccountType.PROSPECT
    health_score: Optional[int] = Field(None, ge=0, le=100)
    owner_id: Optional[str] = None


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    website: Optional[str] = Field(None, max_length=255)
    type: Optional[AccountType] = None
    health_score: Optional[int] = Field(None, ge=0, le=100)
    owner_id: Optional[str] = None

    @field_validator("name", "type")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    website: Optional[str] = None
    type: AccountType
    health_score: Optional[int] = None
    owner_id: Optional[str] = None
    created_at: Optional[datetime] = None


@router.get("", response_model=List[AccountResponse])
def list_accounts(
    type: Optional[AccountType] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    where = {"type": type} if type else None
    return db.accounts.find_many(where, order_by="name", limit=limit, offset=offset)


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(account_id: str, db: ScopedDataClient = Depends(get_scoped_data_client)):
    return db.accounts.get_by_id(account_id)


@router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
def create_account(
    body: AccountCreate,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    return db.accounts.create(body.model_dump())


@router.put("/{account_id}", response_model=AccountResponse)
def upsert_account(
    account_id: str,
    body: AccountCreate,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    """Create or replace an account under a client-chosen id."""
    data = body.model_dump()
    return db.accounts.upsert(account_id, create=data, update=data)


@router.patch("/{account_id}", response_model=AccountResponse)
def update_account(
    account_id: str,
    body: AccountUpdate,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    return db.accounts.update(account_id, body.model_dump(exclude_unset=True))


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(
    account_id: str,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    db.accounts.delete(account_id)
