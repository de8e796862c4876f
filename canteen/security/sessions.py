from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import RedirectResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from canteen import db as db_module
from canteen.auth import Principal
from canteen.config import settings
from canteen.models import Contractor, Employee, EmployeeStatus, PrincipalKind, WebSession


AUTH_EXEMPT_PATHS = {'/login', '/robots.txt', '/healthz'}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _session_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.session_ttl_minutes)


def principal_from_employee(employee: Employee) -> Principal:
    return Principal(
        kind=PrincipalKind.EMPLOYEE,
        id=employee.id,
        login_id=employee.login_id,
        display_name=employee.name,
        role=employee.role,
        status=employee.status,
    )


def principal_from_contractor(contractor: Contractor) -> Principal:
    return Principal(
        kind=PrincipalKind.CONTRACTOR,
        id=contractor.id,
        login_id=contractor.login_id,
        display_name=contractor.business_name,
    )


def create_web_session(
    db: Session,
    principal: Principal,
    ip: str | None,
    user_agent: str | None,
) -> str:
    token = secrets.token_urlsafe(48)
    db.add(
        WebSession(
            session_token=token,
            principal_kind=principal.kind,
            principal_id=principal.id,
            ip=ip,
            user_agent=user_agent,
            expires_at=_session_expiry(),
        )
    )
    db.flush()
    return token


def revoke_web_session(db: Session, token: str) -> None:
    session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not session or session.revoked_at is not None:
        return
    session.revoked_at = _now()


def revoke_sessions_for(db: Session, *, kind: PrincipalKind, principal_id: int) -> int:
    sessions = db.execute(
        select(WebSession).where(
            WebSession.principal_kind == kind,
            WebSession.principal_id == principal_id,
            WebSession.revoked_at.is_(None),
        )
    ).scalars().all()
    now = _now()
    for session in sessions:
        session.revoked_at = now
    return len(sessions)


def load_principal_from_token(db: Session, token: str | None) -> Principal | None:
    if not token:
        return None

    web_session = db.execute(select(WebSession).where(WebSession.session_token == token)).scalar_one_or_none()
    if not web_session:
        return None

    now = _now()
    if web_session.revoked_at is not None or web_session.expires_at <= now:
        return None

    if web_session.principal_kind == PrincipalKind.EMPLOYEE:
        employee = db.get(Employee, web_session.principal_id)
        # Deleted or deactivated accounts lose their open sessions.
        if employee is None or employee.status == EmployeeStatus.DEACTIVATED:
            return None
        principal = principal_from_employee(employee)
    elif web_session.principal_kind == PrincipalKind.CONTRACTOR:
        contractor = db.get(Contractor, web_session.principal_id)
        if contractor is None:
            return None
        principal = principal_from_contractor(contractor)
    else:
        return None

    web_session.last_seen_at = now
    web_session.expires_at = _session_expiry()
    return principal


def install_auth_session_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_session_middleware(request: Request, call_next):
        token = request.cookies.get(settings.session_cookie_name)
        with db_module.SessionLocal() as db:
            request.state.principal = load_principal_from_token(db, token)
            db.commit()

        if request.url.path not in AUTH_EXEMPT_PATHS and request.state.principal is None:
            return RedirectResponse('/login', status_code=303)

        return await call_next(request)
