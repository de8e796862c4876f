from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from canteen.auth import Principal, get_current_principal, get_session_principal, home_path_for
from canteen.config import settings
from canteen.db import get_db
from canteen.dependencies import banner_from_query, get_client_ip, get_templates, redirect_with_result
from canteen.security.csrf import verify_csrf
from canteen.security.sessions import create_web_session, revoke_web_session
from canteen.services.audit_service import log_audit, log_auth_event
from canteen.services.auth_service import authenticate, change_password

router = APIRouter(tags=['auth'])


@router.get('/login')
def login_page(request: Request, templates: Jinja2Templates = Depends(get_templates)):
    principal = get_session_principal(request)
    if principal is not None:
        return RedirectResponse(home_path_for(principal), status_code=303)
    return templates.TemplateResponse(request, 'login.html', {'error': None, 'login_id': ''})


@router.post('/login')
async def login_submit(
    request: Request,
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    login_id = str(form.get('login_id', '')).strip()
    password = str(form.get('password', ''))
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    result = authenticate(db, login_id=login_id, password=password)
    if not result.success:
        log_auth_event(
            db,
            attempted_login_id=login_id,
            success=False,
            failure_reason=result.error.value,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        return templates.TemplateResponse(
            request,
            'login.html',
            {'error': result.message, 'login_id': login_id},
            status_code=401,
        )

    principal: Principal = result.payload
    token = create_web_session(db, principal, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_login_id=login_id,
        success=True,
        principal=principal,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(
        db,
        actor=principal,
        action='AUTH_LOGIN',
        ip=ip,
        metadata={'login_id': login_id, 'kind': principal.kind.value},
    )
    db.commit()

    response = RedirectResponse(home_path_for(principal), status_code=303)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db), _: None = Depends(verify_csrf)):
    principal = get_session_principal(request)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor=principal,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
        metadata={},
    )
    db.commit()

    response = RedirectResponse('/login', status_code=303)
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/change-password')
def change_password_page(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    templates: Jinja2Templates = Depends(get_templates),
):
    return templates.TemplateResponse(
        request,
        'change_password.html',
        {
            'principal': principal,
            'banner': banner_from_query(request),
            'back_href': home_path_for(principal),
        },
    )


@router.post('/change-password')
async def change_password_submit(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    result = change_password(
        db,
        principal=principal,
        current_password=str(form.get('current_password', '')),
        new_password=str(form.get('new_password', '')),
        confirm_password=str(form.get('confirm_password', '')),
    )
    if result.success:
        log_audit(
            db,
            actor=principal,
            action='AUTH_PASSWORD_CHANGED',
            ip=get_client_ip(request),
            metadata={'kind': principal.kind.value},
        )
    db.commit()
    return redirect_with_result('/change-password', result)
