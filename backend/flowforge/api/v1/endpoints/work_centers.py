"""
Work Centers API Endpoints
"""
from fastapi import APIRouter, Depends, Query, Request, status
from typing import Optional
from sqlalchemy.orm import Session
import logging

from flowforge.api.deps import paginate
from flowforge.api.v1.endpoints.auth import get_current_user, require_roles
from flowforge.core.config import settings
from flowforge.core.security import MANAGER_ROLES
from flowforge.db.session import get_db, run_in_transaction
from flowforge.logging_config import audit_log, get_client_ip
from flowforge.models.user import User
from flowforge.models.work_center import WorkCenter
from flowforge.schemas.common import MessageResponse
from flowforge.schemas.work_center import (
    WorkCenterCreate,
    WorkCenterListResponse,
    WorkCenterQuery,
    WorkCenterResponse,
    WorkCenterStatsResponse,
    WorkCenterStatus,
    WorkCenterType,
    WorkCenterUpdate,
)
from flowforge.services import work_center_service

router = APIRouter()
logger = logging.getLogger(__name__)


def work_center_query(
    type: Optional[WorkCenterType] = Query(None),
    status: Optional[WorkCenterStatus] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> WorkCenterQuery:
    return WorkCenterQuery(type=type, status=status, search=search, page=page, limit=limit)


def build_work_center_response(db: Session, work_center: WorkCenter) -> WorkCenterResponse:
    active = work_center_service.count_work(db, work_center.id, work_center_service.ACTIVE_WORK)
    response = WorkCenterResponse.model_validate(work_center)
    response.active_work_orders = active
    response.utilization = work_center_service.utilization(active, work_center.capacity)
    return response


@router.get("", response_model=WorkCenterListResponse)
async def list_work_centers(
    options: WorkCenterQuery = Depends(work_center_query),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    centers, pagination = paginate(
        work_center_service.query_work_centers(db, options), options, WorkCenter.name.asc()
    )
    return WorkCenterListResponse(
        items=[build_work_center_response(db, c) for c in centers],
        pagination=pagination,
    )


@router.get("/stats", response_model=WorkCenterStatsResponse)
async def get_work_center_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return WorkCenterStatsResponse(**work_center_service.work_center_stats(db))


@router.get("/{work_center_id}", response_model=WorkCenterResponse)
async def get_work_center(
    work_center_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return build_work_center_response(db, work_center_service.get_work_center(db, work_center_id))


@router.post("", response_model=WorkCenterResponse, status_code=status.HTTP_201_CREATED)
async def create_work_center(
    request: Request,
    body: WorkCenterCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    work_center = run_in_transaction(db, lambda: work_center_service.create_work_center(db, body))
    audit_log("WORK_CENTER_CREATED", user_id=current_user.id, resource_type="work_center",
              resource_id=work_center.id, details={"name": work_center.name},
              ip_address=get_client_ip(request))
    return build_work_center_response(db, work_center)


@router.put("/{work_center_id}", response_model=WorkCenterResponse)
async def update_work_center(
    request: Request,
    work_center_id: int,
    body: WorkCenterUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    """Update a work center. MAINTENANCE / OFFLINE are refused while work is running on it."""
    def work():
        work_center = work_center_service.get_work_center(db, work_center_id)
        return work_center_service.update_work_center(db, work_center, body)

    work_center = run_in_transaction(db, work)
    audit_log("WORK_CENTER_UPDATED", user_id=current_user.id, resource_type="work_center",
              resource_id=work_center.id, details={"changes": sorted(body.model_dump(exclude_unset=True))},
              ip_address=get_client_ip(request))
    return build_work_center_response(db, work_center)


@router.delete("/{work_center_id}", response_model=MessageResponse)
async def delete_work_center(
    request: Request,
    work_center_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_roles(*MANAGER_ROLES)),
):
    def work():
        work_center_service.delete_work_center(db, work_center_service.get_work_center(db, work_center_id))

    run_in_transaction(db, work)
    audit_log("WORK_CENTER_DELETED", user_id=current_user.id, resource_type="work_center",
              resource_id=work_center_id, ip_address=get_client_ip(request))
    return MessageResponse(message="Work center deleted successfully")
