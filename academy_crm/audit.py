"""
Audit logging for mutations

Entries are added to the caller's session so they commit (or roll back)
together with the change they describe.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from .models import AuditLog, User

logger = logging.getLogger(__name__)

ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_DELETE = "DELETE"


@dataclass
class AuditContext:
    """Client metadata recorded with each audit entry"""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def audit_context_from_request(request: Optional[Request]) -> AuditContext:
    if request is None:
        return AuditContext()
    client_ip = request.client.host if request.client else None
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        client_ip = forwarded.split(",")[0].strip()
    return AuditContext(ip_address=client_ip, user_agent=request.headers.get("user-agent"))


def snapshot(obj: Any, fields: tuple[str, ...]) -> dict:
    """JSON-safe dict of selected model attributes"""
    return json.loads(json.dumps({f: getattr(obj, f, None) for f in fields}, default=str))


def log_audit(
    db: Session,
    user: Optional[User],
    action: str,
    entity: str,
    entity_id: str,
    old_value: Optional[dict] = None,
    new_value: Optional[dict] = None,
    context: Optional[AuditContext] = None,
) -> AuditLog:
    """
    Record an audit event in the current transaction.

    Args:
        db: Session the audited change is being written with
        user: Acting user (None for background jobs)
        action: CREATE, UPDATE or DELETE
        entity: Entity name, e.g. "Meeting"
        entity_id: Id of the affected row
        old_value: State before the change
        new_value: State after the change
        context: Client IP and user agent
    """
    context = context or AuditContext()
    entry = AuditLog(
        user_id=user.id if user else None,
        user_name=user.name if user else "system",
        action=action,
        entity=entity,
        entity_id=entity_id,
        old_value=json.loads(json.dumps(old_value, default=str)) if old_value else None,
        new_value=json.loads(json.dumps(new_value, default=str)) if new_value else None,
        ip_address=context.ip_address,
        user_agent=context.user_agent[:500] if context.user_agent else None,
    )
    db.add(entry)
    logger.debug(f"📝 Audit {action} {entity}:{entity_id} by {entry.user_name}")
    return entry


def get_audit_logs(
    db: Session,
    entity: Optional[str] = None,
    entity_id: Optional[str] = None,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[AuditLog], int]:
    query = db.query(AuditLog)
    if entity:
        query = query.filter(AuditLog.entity == entity)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if action:
        query = query.filter(AuditLog.action == action)
    if date_from:
        query = query.filter(AuditLog.created_at >= date_from)
    if date_to:
        query = query.filter(AuditLog.created_at <= date_to)

    total = query.count()
    logs = query.order_by(AuditLog.created_at.desc()).offset(offset).limit(limit).all()
    return logs, total
