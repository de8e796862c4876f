from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from canteen.auth import Principal
from canteen.models import Contractor, Employee, EmployeeStatus, PrincipalKind
from canteen.security.passwords import hash_password, password_problem, verify_password
from canteen.security.sessions import principal_from_contractor, principal_from_employee
from canteen.services.results import LedgerError, OperationResult

INVALID_CREDENTIALS_MESSAGE = 'Invalid Login ID or Password. Please try again.'
DEACTIVATED_MESSAGE = 'Your account has been deactivated. Please contact an administrator.'


def _match_employee(db: Session, login_id: str, password: str) -> Employee | None:
    candidates = db.execute(
        select(Employee).where(Employee.login_id == login_id).order_by(Employee.id.asc())
    ).scalars().all()
    for employee in candidates:
        if verify_password(password, employee.password_hash):
            return employee
    return None


def _match_contractor(db: Session, login_id: str, password: str) -> Contractor | None:
    candidates = db.execute(
        select(Contractor).where(Contractor.login_id == login_id).order_by(Contractor.id.asc())
    ).scalars().all()
    for contractor in candidates:
        if verify_password(password, contractor.password_hash):
            return contractor
    return None


def authenticate(db: Session, *, login_id: str, password: str) -> OperationResult:
    """Resolves credentials to a ``Principal``; employees are checked before contractors."""
    login_id = login_id.strip()

    employee = _match_employee(db, login_id, password)
    if employee:
        if employee.status == EmployeeStatus.DEACTIVATED:
            return OperationResult.fail(LedgerError.ACCOUNT_DEACTIVATED, DEACTIVATED_MESSAGE)
        return OperationResult.ok('Login successful.', payload=principal_from_employee(employee))

    contractor = _match_contractor(db, login_id, password)
    if contractor:
        return OperationResult.ok('Login successful.', payload=principal_from_contractor(contractor))

    return OperationResult.fail(LedgerError.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE)


def change_password(
    db: Session,
    *,
    principal: Principal | None,
    current_password: str,
    new_password: str,
    confirm_password: str | None = None,
) -> OperationResult:
    if principal is None:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'No user is logged in.')

    if principal.kind == PrincipalKind.EMPLOYEE:
        account = db.get(Employee, principal.id)
    elif principal.kind == PrincipalKind.CONTRACTOR:
        account = db.get(Contractor, principal.id)
    else:
        raise ValueError(f'Unknown principal kind: {principal.kind}')
    if account is None:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Account not found.')

    if not verify_password(current_password, account.password_hash):
        return OperationResult.fail(LedgerError.WRONG_PASSWORD, 'The current password you entered is incorrect.')
    problem = password_problem(new_password, label='New password')
    if problem:
        return OperationResult.fail(LedgerError.INVALID_INPUT, problem)
    if confirm_password is not None and new_password != confirm_password:
        return OperationResult.fail(LedgerError.INVALID_INPUT, 'New password and confirmation do not match.')

    account.password_hash = hash_password(new_password)
    db.flush()
    return OperationResult.ok('Password changed successfully.')
