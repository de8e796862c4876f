from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from canteen.auth import Principal, admin_access, is_super_admin, super_admin_access
from canteen.config import settings
from canteen.db import get_db
from canteen.dependencies import (
    banner_from_query,
    form_coupon_type,
    form_int,
    get_client_ip,
    get_templates,
    redirect_with_result,
)
from canteen.models import CouponStatus, CouponType, Employee, EmployeeRole, EmployeeStatus, PrincipalKind
from canteen.security.csrf import verify_csrf
from canteen.security.sessions import revoke_sessions_for
from canteen.services import coupon_ledger_service as ledger
from canteen.services import registry_service as registry
from canteen.services.audit_service import log_audit, recent_activity, recent_failed_logins
from canteen.services.insights_service import generate_insights
from canteen.services.report_service import admin_totals, redemption_history
from canteen.services.results import LedgerError, OperationResult

router = APIRouter(tags=['admin'])

STAFF_ROLES = [EmployeeRole.EMPLOYEE, EmployeeRole.CONTRACTUAL_EMPLOYEE]
ACCOUNT_ROLES = [EmployeeRole.ADMIN, EmployeeRole.CANTEEN_MANAGER]


def _finish(
    request: Request,
    db: Session,
    *,
    actor: Principal,
    action: str,
    result: OperationResult,
    redirect_to: str,
    metadata: dict | None = None,
):
    if result.success:
        log_audit(db, actor=actor, action=action, ip=get_client_ip(request), metadata=metadata or {})
    db.commit()
    return redirect_with_result(redirect_to, result)


def _next_path(request: Request, default: str) -> str:
    target = request.query_params.get('next', '')
    if target.startswith('/admin') and not target.startswith('//'):
        return target
    return default


def _protected_account_problem(principal: Principal, employee: Employee | None) -> OperationResult | None:
    if employee is None:
        return None
    if employee.login_id == settings.super_admin_login_id:
        return OperationResult.fail(LedgerError.INVALID_INPUT, 'The super admin account cannot be changed here.')
    if employee.id == principal.id:
        return OperationResult.fail(LedgerError.INVALID_INPUT, 'You cannot change your own account here.')
    if employee.role in ACCOUNT_ROLES and not is_super_admin(principal):
        return OperationResult.fail(LedgerError.INVALID_INPUT, 'Only the super admin can manage admin accounts.')
    return None


def _employee_form_values(form) -> dict:
    try:
        role = EmployeeRole(str(form.get('role', EmployeeRole.EMPLOYEE.value)).strip())
    except ValueError:
        role = EmployeeRole.EMPLOYEE
    return {
        'name': str(form.get('name', '')),
        'login_id': str(form.get('login_id', '')),
        'role': role,
        'email': str(form.get('email', '')),
        'department': str(form.get('department', '')),
        'contractor_name': str(form.get('contractor_name', '')),
    }


@router.get('/admin')
def home(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    cards = [
        {'href': '/admin/employees', 'label': 'Employees', 'requires_super_admin': False},
        {'href': '/admin/contractors', 'label': 'Contractors', 'requires_super_admin': False},
        {'href': '/admin/manage-coupons', 'label': 'Manage Coupons', 'requires_super_admin': False},
        {'href': '/admin/history', 'label': 'Redemption History', 'requires_super_admin': False},
        {'href': '/admin/analytics', 'label': 'AI Insights', 'requires_super_admin': False},
        {'href': '/admin/settings', 'label': 'Admin Accounts', 'requires_super_admin': True},
    ]
    super_admin = is_super_admin(principal)
    return templates.TemplateResponse(
        request,
        'admin_home.html',
        {
            'principal': principal,
            'totals': admin_totals(db),
            'cards': [card for card in cards if super_admin or not card['requires_super_admin']],
        },
    )


@router.get('/admin/employees')
def employees_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    return templates.TemplateResponse(
        request,
        'admin_employees.html',
        {
            'principal': principal,
            'banner': banner_from_query(request),
            'employees': registry.list_employees(db, roles=STAFF_ROLES),
            'contractor_names': registry.contractor_business_names(db),
            'departments': registry.DEFAULT_DEPARTMENTS,
            'coupon_types': list(CouponType),
            'roles': STAFF_ROLES,
        },
    )


@router.get('/add-employee')
def add_employee_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    role_param = request.query_params.get('role')
    if request.query_params.get('type') == 'admin':
        title = 'Add Admin / Canteen Manager'
        roles = [EmployeeRole.ADMIN]
        if is_super_admin(principal):
            roles.append(EmployeeRole.CANTEEN_MANAGER)
    elif role_param in {EmployeeRole.EMPLOYEE.value, EmployeeRole.CONTRACTUAL_EMPLOYEE.value}:
        role = EmployeeRole(role_param)
        title = 'Add New Employee' if role == EmployeeRole.EMPLOYEE else 'Add New Contractual Employee'
        roles = [role]
    else:
        title = 'Add New Employee'
        roles = STAFF_ROLES
    return templates.TemplateResponse(
        request,
        'add_employee.html',
        {
            'principal': principal,
            'banner': banner_from_query(request),
            'title': title,
            'roles': roles,
            'departments': registry.DEFAULT_DEPARTMENTS,
            'contractor_names': registry.contractor_business_names(db),
        },
    )


@router.post('/add-employee')
async def add_employee_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    values = _employee_form_values(form)
    if values['role'] in ACCOUNT_ROLES and not is_super_admin(principal):
        result = OperationResult.fail(LedgerError.INVALID_INPUT, 'Only the super admin can add admin accounts.')
    else:
        result = registry.add_employee(db, password=str(form.get('password', '')), **values)
    target = '/admin/settings' if values['role'] in ACCOUNT_ROLES else '/admin/employees'
    if not result.success:
        target = '/add-employee'
    return _finish(
        request,
        db,
        actor=principal,
        action='EMPLOYEE_CREATED',
        result=result,
        redirect_to=target,
        metadata={'login_id': values['login_id'].strip(), 'role': values['role'].value},
    )


@router.post('/admin/employees/{employee_id}/update')
async def update_employee(
    employee_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    values = _employee_form_values(form)
    result = _protected_account_problem(principal, db.get(Employee, employee_id))
    if result is None and values['role'] in ACCOUNT_ROLES and not is_super_admin(principal):
        result = OperationResult.fail(LedgerError.INVALID_INPUT, 'Only the super admin can manage admin accounts.')
    if result is None:
        result = registry.update_employee(
            db,
            employee_id=employee_id,
            new_password=str(form.get('new_password', '')) or None,
            **values,
        )
    return _finish(
        request,
        db,
        actor=principal,
        action='EMPLOYEE_UPDATED',
        result=result,
        redirect_to='/admin/employees',
        metadata={'employee_id': employee_id},
    )


@router.post('/admin/employees/{employee_id}/status')
def toggle_employee_status(
    employee_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = _protected_account_problem(principal, db.get(Employee, employee_id))
    if result is None:
        result = registry.toggle_employee_status(db, employee_id=employee_id)
        if result.success and result.payload.status == EmployeeStatus.DEACTIVATED:
            revoke_sessions_for(db, kind=PrincipalKind.EMPLOYEE, principal_id=employee_id)
    return _finish(
        request,
        db,
        actor=principal,
        action='EMPLOYEE_STATUS_TOGGLED',
        result=result,
        redirect_to=_next_path(request, '/admin/employees'),
        metadata={'employee_id': employee_id},
    )


@router.post('/admin/employees/{employee_id}/delete')
def delete_employee(
    employee_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = _protected_account_problem(principal, db.get(Employee, employee_id))
    if result is None:
        result = registry.delete_employee(db, employee_id=employee_id)
        if result.success:
            revoke_sessions_for(db, kind=PrincipalKind.EMPLOYEE, principal_id=employee_id)
    return _finish(
        request,
        db,
        actor=principal,
        action='EMPLOYEE_DELETED',
        result=result,
        redirect_to=_next_path(request, '/admin/employees'),
        metadata={'employee_id': employee_id, 'removed_coupons': result.count},
    )


@router.post('/admin/employees/{employee_id}/coupons')
async def issue_employee_coupons(
    employee_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    coupon_type = form_coupon_type(form)
    result = ledger.issue_employee_batch(db, employee_id=employee_id, coupon_type=coupon_type)
    return _finish(
        request,
        db,
        actor=principal,
        action='COUPONS_ISSUED_EMPLOYEE',
        result=result,
        redirect_to='/admin/employees',
        metadata={'employee_id': employee_id, 'coupon_type': coupon_type.value, 'count': result.count},
    )


@router.post('/admin/employees/{employee_id}/coupons/remove-last-batch')
def remove_last_batch(
    employee_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = ledger.remove_last_batch(db, employee_id=employee_id)
    return _finish(
        request,
        db,
        actor=principal,
        action='COUPON_BATCH_REMOVED',
        result=result,
        redirect_to='/admin/manage-coupons',
        metadata={'employee_id': employee_id, 'count': result.count},
    )


@router.get('/admin/contractors')
def contractors_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    return templates.TemplateResponse(
        request,
        'admin_contractors.html',
        {
            'principal': principal,
            'banner': banner_from_query(request),
            'contractors': registry.list_contractors(db),
            'coupon_types': list(CouponType),
        },
    )


@router.post('/admin/contractors/create')
async def create_contractor(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    result = registry.add_contractor(
        db,
        login_id=str(form.get('login_id', '')),
        business_name=str(form.get('business_name', '')),
        password=str(form.get('password', '')),
    )
    return _finish(
        request,
        db,
        actor=principal,
        action='CONTRACTOR_CREATED',
        result=result,
        redirect_to='/admin/contractors',
        metadata={'login_id': str(form.get('login_id', '')).strip()},
    )


@router.post('/admin/contractors/{contractor_id}/update')
async def update_contractor(
    contractor_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    result = registry.update_contractor(
        db,
        contractor_id=contractor_id,
        login_id=str(form.get('login_id', '')),
        business_name=str(form.get('business_name', '')),
        new_password=str(form.get('new_password', '')) or None,
    )
    return _finish(
        request,
        db,
        actor=principal,
        action='CONTRACTOR_UPDATED',
        result=result,
        redirect_to='/admin/contractors',
        metadata={'contractor_id': contractor_id},
    )


@router.post('/admin/contractors/{contractor_id}/delete')
def delete_contractor(
    contractor_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = registry.delete_contractor(db, contractor_id=contractor_id)
    if result.success:
        revoke_sessions_for(db, kind=PrincipalKind.CONTRACTOR, principal_id=contractor_id)
    return _finish(
        request,
        db,
        actor=principal,
        action='CONTRACTOR_DELETED',
        result=result,
        redirect_to='/admin/contractors',
        metadata={'contractor_id': contractor_id, 'removed_coupons': result.count},
    )


@router.post('/admin/contractors/{contractor_id}/coupons')
async def issue_contractor_coupons(
    contractor_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    coupon_type = form_coupon_type(form)
    quantity = form_int(form, 'quantity')
    result = ledger.issue_contractor_batch(
        db,
        contractor_id=contractor_id,
        coupon_type=coupon_type,
        quantity=quantity,
    )
    return _finish(
        request,
        db,
        actor=principal,
        action='COUPONS_ISSUED_CONTRACTOR',
        result=result,
        redirect_to='/admin/contractors',
        metadata={'contractor_id': contractor_id, 'coupon_type': coupon_type.value, 'count': result.count},
    )


@router.get('/admin/manage-coupons')
def manage_coupons_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    status_param = request.query_params.get('coupon_status') or None
    type_param = request.query_params.get('coupon_type') or None
    employee_param = request.query_params.get('employee_id') or None
    try:
        status = CouponStatus(status_param) if status_param else None
        coupon_type = ledger.parse_coupon_type(type_param) if type_param else None
        employee_id = int(employee_param) if employee_param else None
    except ValueError:
        status = coupon_type = employee_id = None
    employees = registry.list_employees(db)
    return templates.TemplateResponse(
        request,
        'admin_coupons.html',
        {
            'principal': principal,
            'banner': banner_from_query(request),
            'coupons': ledger.list_coupons(db, status=status, coupon_type=coupon_type, employee_id=employee_id),
            'employee_names': {employee.id: employee.name for employee in employees},
            'employees': [e for e in employees if e.role in STAFF_ROLES],
            'coupon_types': list(CouponType),
            'statuses': list(CouponStatus),
            'filters': {
                'coupon_status': status.value if status else '',
                'coupon_type': coupon_type.value if coupon_type else '',
                'employee_id': employee_id or '',
            },
        },
    )


@router.post('/admin/manage-coupons/{coupon_id}/remove')
def remove_coupon(
    coupon_id: str,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    _: None = Depends(verify_csrf),
):
    result = ledger.remove_coupon(db, coupon_id=coupon_id)
    return _finish(
        request,
        db,
        actor=principal,
        action='COUPON_REMOVED',
        result=result,
        redirect_to='/admin/manage-coupons',
        metadata={'coupon_id': coupon_id},
    )


@router.get('/admin/history')
def history_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    return templates.TemplateResponse(
        request,
        'admin_history.html',
        {
            'principal': principal,
            'title': 'Redemption History',
            'employee': None,
            'rows': redemption_history(db),
        },
    )


@router.get('/admin/history/employee/{employee_id}')
def employee_history_page(
    employee_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    employee = db.get(Employee, employee_id)
    if employee is None:
        return redirect_with_result(
            '/admin/employees',
            OperationResult.fail(LedgerError.NOT_FOUND, 'Employee not found.'),
        )
    return templates.TemplateResponse(
        request,
        'admin_history.html',
        {
            'principal': principal,
            'title': f'History for {employee.name}',
            'employee': employee,
            'rows': redemption_history(db, employee_id=employee_id),
            'outstanding': ledger.list_coupons(db, status=CouponStatus.ISSUED, employee_id=employee_id),
        },
    )


@router.get('/admin/analytics')
def analytics_page(
    request: Request,
    principal: Principal = Depends(admin_access),
    templates: Jinja2Templates = Depends(get_templates),
):
    return templates.TemplateResponse(
        request,
        'admin_analytics.html',
        {'principal': principal, 'question': '', 'answer': None},
    )


@router.post('/admin/analytics')
async def analytics_submit(
    request: Request,
    principal: Principal = Depends(admin_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
    _: None = Depends(verify_csrf),
):
    form = await request.form()
    question = str(form.get('question', '')).strip()
    answer = None
    if question:
        # The Gemini call blocks for up to its timeout.
        answer = await run_in_threadpool(
            generate_insights,
            question,
            registry.list_employees(db),
            ledger.list_coupons(db, limit=None),
        )
    return templates.TemplateResponse(
        request,
        'admin_analytics.html',
        {'principal': principal, 'question': question, 'answer': answer},
    )


@router.get('/admin/settings')
def settings_page(
    request: Request,
    principal: Principal = Depends(super_admin_access),
    db: Session = Depends(get_db),
    templates: Jinja2Templates = Depends(get_templates),
):
    return templates.TemplateResponse(
        request,
        'admin_settings.html',
        {
            'principal': principal,
            'banner': banner_from_query(request),
            'accounts': registry.list_employees(db, roles=ACCOUNT_ROLES),
            'super_admin_login_id': settings.super_admin_login_id,
            'activity': recent_activity(db),
            'failed_logins': recent_failed_logins(db),
        },
    )
