"""
Client API routes.

All data access goes through ScopedDataClient, so every query is
constrained to the resolved tenant. Ids of other tenants' clients behave
exactly like nonexistent ids (404).
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from pmo.api.dependencies.modules import require_module
from pmo.constants.roles import MANAGER_ROLES, WRITER_ROLES, TenantRole
from pmo.platform.rbac import require_tenant_role
from pmo.repositories.data_client import ScopedDataClient, get_scoped_data_client

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/clients",
    tags=["clients"],
    dependencies=[Depends(require_module("clients"))],
)


class ClientCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    industry: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None


class ClientUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    industry: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None
    archived: Optional[bool] = None

    @field_validator("name", "archived")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class ClientResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    industry: Optional[str] = None
    notes: Optional[str] = None
    archived: bool
    created_at: Optional[datetime] = None


@router.get("", response_model=List[ClientResponse])
def list_clients(
    include_archived: bool = False,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    if include_archived:
        return db.clients.find_many(order_by="name", limit=limit, offset=offset)
    return db.clients.list_active(limit=limit, offset=offset)


@router.get("/{client_id}", response_model=ClientResponse)
def get_client(client_id: str, db: ScopedDataClient = Depends(get_scoped_data_client)):
    return db.clients.get_by_id(client_id)


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
def create_client(
    body: ClientCreate,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    return db.clients.create(body.model_dump())


@router.patch("/{client_id}", response_model=ClientResponse)
def update_client(
    client_id: str,
    body: ClientUpdate,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    return db.clients.update(client_id, body.model_dump(exclude_unset=True))


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: str,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    db.clients.delete(client_id)


@router.post("/purge-archived")
def purge_archived_clients(
    _role: TenantRole = Depends(require_tenant_role(*MANAGER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    """Permanently delete the tenant's archived clients."""
    return {"deleted": db.clients.purge_archived()}
