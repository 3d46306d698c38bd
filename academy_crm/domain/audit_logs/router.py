"""Audit log router - read-only access for admins"""

from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...audit import get_audit_logs
from ...auth import admin_only
from ...database import get_db
from ...models import User

router = APIRouter(prefix="/audit-logs", tags=["Audit Logs"])


class AuditLogResponse(BaseModel):
    id: str
    userId: Optional[str] = None
    userName: Optional[str] = None
    action: str
    entity: str
    entityId: str
    oldValue: Optional[Any] = None
    newValue: Optional[Any] = None
    ipAddress: Optional[str] = None
    userAgent: Optional[str] = None
    createdAt: Optional[datetime] = None


class AuditLogListResponse(BaseModel):
    logs: list[AuditLogResponse]
    total: int
    limit: int
    offset: int


@router.get("", response_model=AuditLogListResponse)
async def list_audit_logs(
    entity: Optional[str] = Query(None),
    entityId: Optional[str] = Query(None),
    userId: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    dateFrom: Optional[datetime] = Query(None),
    dateTo: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(admin_only),
    db: Session = Depends(get_db),
):
    logs, total = get_audit_logs(db, entity, entityId, userId, action, dateFrom, dateTo, limit, offset)
    return AuditLogListResponse(
        logs=[
            AuditLogResponse(
                id=log.id,
                userId=log.user_id,
                userName=log.user_name,
                action=log.action,
                entity=log.entity,
                entityId=log.entity_id,
                oldValue=log.old_value,
                newValue=log.new_value,
                ipAddress=log.ip_address,
                userAgent=log.user_agent,
                createdAt=log.created_at,
            )
            for log in logs
        ],
        total=total,
        limit=limit,
        offset=offset,
    )


__all__ = ["router"]
