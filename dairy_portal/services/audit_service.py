from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session

from dairy_portal.models import AuditLog, AuthEvent

logger = logging.getLogger(__name__)


def _json_safe(value):
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    return value


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    if not success:
        logger.warning('Failed login for %r from %s: %s', attempted_username, ip, failure_reason)
    db.add(
        AuthEvent(
            attempted_username=attempted_username[:120],
            success=success,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=ip,
            user_agent=(user_agent or '')[:500] or None,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_principal_id: int | None,
    action: str,
    ip: str | None,
    customer_id: int | None = None,
    metadata: dict | None = None,
) -> AuditLog:
    """Record a money-affecting or administrative action alongside the change it describes."""
    entry = AuditLog(
        actor_principal_id=actor_principal_id,
        action=action,
        customer_id=customer_id,
        ip=ip,
        meta=_json_safe(metadata or {}),
    )
    db.add(entry)
    logger.info('%s by principal=%s customer=%s', action, actor_principal_id, customer_id)
    return entry


def list_customer_audit(db: Session, *, customer_id: int, limit: int = 50) -> list[AuditLog]:
    return db.execute(
        select(AuditLog)
        .where(AuditLog.customer_id == customer_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
    ).scalars().all()
