from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from canteen.auth import Principal
from canteen.models import AuditLog, AuthEvent


def _actor_columns(actor: Principal | None) -> dict:
    if actor is None:
        return {'kind': None, 'id': None}
    return {'kind': actor.kind.value, 'id': actor.id}


def log_auth_event(
    db: Session,
    *,
    attempted_login_id: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal: Principal | None = None,
    failure_reason: str | None = None,
) -> None:
    actor = _actor_columns(principal)
    db.add(
        AuthEvent(
            attempted_login_id=attempted_login_id,
            success=success,
            failure_reason=failure_reason,
            principal_kind=actor['kind'],
            principal_id=actor['id'],
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor: Principal | None,
    action: str,
    ip: str | None,
    metadata: dict | None = None,
) -> None:
    """Records a mutation; system-initiated rows (email sink, seeding) carry no actor."""
    columns = _actor_columns(actor)
    db.add(
        AuditLog(
            actor_kind=columns['kind'],
            actor_id=columns['id'],
            action=action,
            ip=ip,
            meta=metadata or {},
        )
    )


def recent_activity(db: Session, *, limit: int = 50) -> list[AuditLog]:
    return db.execute(
        select(AuditLog).order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit)
    ).scalars().all()


def recent_failed_logins(db: Session, *, limit: int = 20) -> list[AuthEvent]:
    return db.execute(
        select(AuthEvent)
        .where(AuthEvent.success.is_(False))
        .order_by(AuthEvent.created_at.desc(), AuthEvent.id.desc())
        .limit(limit)
    ).scalars().all()
