"""
Project API routes.

SECURITY:
- Scoped through ScopedDataClient; foreign ids answer 404
- client_id is checked against the current tenant's clients, so a project
  can never reference another tenant's client
"""

import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from pmo.api.dependencies.modules import require_module
from pmo.constants.roles import WRITER_ROLES, TenantRole
from pmo.models.project import ProjectStatus
from pmo.platform.errors import NotFoundError
from pmo.platform.rbac import require_tenant_role
from pmo.repositories.data_client import ScopedDataClient, get_scoped_data_client

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/projects",
    tags=["projects"],
    dependencies=[Depends(require_module("projects"))],
)


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    status: ProjectStatus = ProjectStatus.PLANNING
    client_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    status: Optional[ProjectStatus] = None
    client_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("name", "status")
    @classmethod
    def reject_null(cls, v):
        if v is None:
            raise ValueError("Field cannot be null")
        return v


class BulkStatusRequest(BaseModel):
    project_ids: List[str] = Field(..., min_length=1, max_length=500)
    status: ProjectStatus


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: Optional[str] = None
    status: ProjectStatus
    client_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    created_at: Optional[datetime] = None


def _check_client(db: ScopedDataClient, client_id: Optional[str]) -> None:
    if client_id and not db.clients.exists(client_id):
        raise NotFoundError("Client")


@router.get("", response_model=List[ProjectResponse])
def list_projects(
    status_filter: Optional[ProjectStatus] = Query(None, alias="status"),
    client_id: Optional[str] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    where = {}
    if status_filter is not None:
        where["status"] = status_filter
    if client_id:
        where["client_id"] = client_id
    return db.projects.find_many(where, order_by="-created_at", limit=limit, offset=offset)


@router.get("/stats/by-status", response_model=Dict[str, int])
def project_counts_by_status(db: ScopedDataClient = Depends(get_scoped_data_client)):
    return db.projects.count_by_status()


@router.get("/{project_id}", response_model=ProjectResponse)
def get_project(project_id: str, db: ScopedDataClient = Depends(get_scoped_data_client)):
    return db.projects.get_by_id(project_id)


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    body: ProjectCreate,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    _check_client(db, body.client_id)
    return db.projects.create(body.model_dump())


@router.post("/bulk-status")
def set_project_status(
    body: BulkStatusRequest,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    """Set the status of several projects; ids of other tenants are not counted."""
    return {"updated": db.projects.set_status(body.project_ids, body.status)}


@router.patch("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: str,
    body: ProjectUpdate,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    data = body.model_dump(exclude_unset=True)
    _check_client(db, data.get("client_id"))
    return db.projects.update(project_id, data)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: str,
    _role: TenantRole = Depends(require_tenant_role(*WRITER_ROLES)),
    db: ScopedDataClient = Depends(get_scoped_data_client),
):
    db.projects.delete(project_id)
