from __future__ import annotations

import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from canteen.models import (
    AppNotification,
    Contractor,
    Coupon,
    Employee,
    EmployeeRole,
    EmployeeStatus,
)
from canteen.security.passwords import hash_password, password_problem
from canteen.services.results import LedgerError, OperationResult

logger = logging.getLogger(__name__)

DEFAULT_DEPARTMENTS = [
    'HR & Admin',
    'Operations',
    'SCM',
    'PPC',
    'Production',
    'Stores',
    'IT',
    'Security',
    'Housekeeping',
    'Sales',
    'Finance',
    'Quality',
]


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def next_id(db: Session, model) -> int:
    return (db.execute(select(func.max(model.id))).scalar_one() or 0) + 1


def login_id_in_use(db: Session, login_id: str, *, exclude_employee_id: int | None = None, exclude_contractor_id: int | None = None) -> bool:
    employee_stmt = select(Employee.id).where(Employee.login_id == login_id)
    if exclude_employee_id is not None:
        employee_stmt = employee_stmt.where(Employee.id != exclude_employee_id)
    if db.execute(employee_stmt.limit(1)).scalar_one_or_none() is not None:
        return True

    contractor_stmt = select(Contractor.id).where(Contractor.login_id == login_id)
    if exclude_contractor_id is not None:
        contractor_stmt = contractor_stmt.where(Contractor.id != exclude_contractor_id)
    return db.execute(contractor_stmt.limit(1)).scalar_one_or_none() is not None


def _validate_employee_fields(
    *,
    name: str | None,
    login_id: str | None,
    role: EmployeeRole,
    department: str | None,
    contractor_name: str | None,
) -> str | None:
    if not name:
        return 'Name is required.'
    if not login_id:
        return 'Employee ID is required.'
    if role == EmployeeRole.EMPLOYEE and not department:
        return 'Department is required for employees.'
    if role == EmployeeRole.CONTRACTUAL_EMPLOYEE and not contractor_name:
        return 'Contractor is required for contractual employees.'
    return None


def list_employees(db: Session, *, roles: list[EmployeeRole] | None = None) -> list[Employee]:
    stmt = select(Employee)
    if roles:
        stmt = stmt.where(Employee.role.in_(roles))
    return db.execute(stmt.order_by(Employee.id.asc())).scalars().all()


def employees_for_contractor(db: Session, *, business_name: str) -> list[Employee]:
    return db.execute(
        select(Employee)
        .where(
            Employee.role == EmployeeRole.CONTRACTUAL_EMPLOYEE,
            Employee.contractor_name == business_name,
        )
        .order_by(Employee.name.asc())
    ).scalars().all()


def add_employee(
    db: Session,
    *,
    name: str,
    login_id: str,
    password: str,
    role: EmployeeRole,
    email: str | None = None,
    department: str | None = None,
    contractor_name: str | None = None,
) -> OperationResult:
    name = _clean(name)
    login_id = _clean(login_id)
    department = _clean(department) if role == EmployeeRole.EMPLOYEE else None
    contractor_name = _clean(contractor_name) if role == EmployeeRole.CONTRACTUAL_EMPLOYEE else None
    email = None if role == EmployeeRole.CONTRACTUAL_EMPLOYEE else _clean(email)

    problem = _validate_employee_fields(
        name=name,
        login_id=login_id,
        role=role,
        department=department,
        contractor_name=contractor_name,
    ) or password_problem(password)
    if problem:
        return OperationResult.fail(LedgerError.INVALID_INPUT, problem)
    if login_id_in_use(db, login_id):
        return OperationResult.fail(LedgerError.DUPLICATE_LOGIN_ID, f'Login ID {login_id} is already in use.')

    employee = Employee(
        id=next_id(db, Employee),
        login_id=login_id,
        name=name,
        email=email,
        password_hash=hash_password(password),
        role=role,
        department=department,
        contractor_name=contractor_name,
        status=EmployeeStatus.ACTIVE,
    )
    db.add(employee)
    db.flush()
    return OperationResult.ok(f'{employee.name} added successfully.', count=1, payload=employee)


def update_employee(
    db: Session,
    *,
    employee_id: int,
    name: str,
    login_id: str,
    role: EmployeeRole,
    email: str | None = None,
    department: str | None = None,
    contractor_name: str | None = None,
    new_password: str | None = None,
) -> OperationResult:
    employee = db.get(Employee, employee_id)
    if not employee:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Employee not found.')

    name = _clean(name)
    login_id = _clean(login_id)
    department = _clean(department) if role == EmployeeRole.EMPLOYEE else None
    contractor_name = _clean(contractor_name) if role == EmployeeRole.CONTRACTUAL_EMPLOYEE else None
    email = None if role == EmployeeRole.CONTRACTUAL_EMPLOYEE else _clean(email)

    problem = _validate_employee_fields(
        name=name,
        login_id=login_id,
        role=role,
        department=department,
        contractor_name=contractor_name,
    )
    if not problem and new_password:
        problem = password_problem(new_password)
    if problem:
        return OperationResult.fail(LedgerError.INVALID_INPUT, problem)
    if login_id_in_use(db, login_id, exclude_employee_id=employee.id):
        return OperationResult.fail(LedgerError.DUPLICATE_LOGIN_ID, f'Login ID {login_id} is already in use.')

    employee.name = name
    employee.login_id = login_id
    employee.role = role
    employee.email = email
    employee.department = department
    employee.contractor_name = contractor_name
    if new_password:
        employee.password_hash = hash_password(new_password)
    db.flush()
    return OperationResult.ok(f'{employee.name} updated successfully.', count=1, payload=employee)


def toggle_employee_status(db: Session, *, employee_id: int) -> OperationResult:
    employee = db.get(Employee, employee_id)
    if not employee:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Employee not found.')

    # Coupons are kept; deactivation only blocks login and redemption.
    if employee.status == EmployeeStatus.ACTIVE:
        employee.status = EmployeeStatus.DEACTIVATED
    else:
        employee.status = EmployeeStatus.ACTIVE
    db.flush()
    return OperationResult.ok(f'{employee.name} is now {employee.status.value}.', count=1, payload=employee)


def delete_employee(db: Session, *, employee_id: int) -> OperationResult:
    employee = db.get(Employee, employee_id)
    if not employee:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Employee not found.')

    name = employee.name
    removed_coupons = db.execute(
        delete(Coupon).where(Coupon.employee_id == employee_id).execution_options(synchronize_session='fetch')
    ).rowcount or 0
    db.execute(
        delete(AppNotification)
        .where(AppNotification.employee_id == employee_id)
        .execution_options(synchronize_session='fetch')
    )
    db.delete(employee)
    db.flush()
    logger.info('Deleted employee %s with %s coupons', employee_id, removed_coupons)
    return OperationResult.ok(f'{name} deleted.', count=removed_coupons)


def list_contractors(db: Session) -> list[Contractor]:
    return db.execute(select(Contractor).order_by(Contractor.business_name.asc(), Contractor.id.asc())).scalars().all()


def contractor_business_names(db: Session) -> list[str]:
    return sorted(db.execute(select(Contractor.business_name)).scalars().all())


def add_contractor(db: Session, *, login_id: str, business_name: str, password: str) -> OperationResult:
    login_id = _clean(login_id)
    business_name = _clean(business_name)
    if not login_id or not business_name:
        return OperationResult.fail(LedgerError.INVALID_INPUT, 'Contractor ID and business name are required.')
    problem = password_problem(password)
    if problem:
        return OperationResult.fail(LedgerError.INVALID_INPUT, problem)
    if login_id_in_use(db, login_id):
        return OperationResult.fail(LedgerError.DUPLICATE_LOGIN_ID, f'Login ID {login_id} is already in use.')

    contractor = Contractor(
        id=next_id(db, Contractor),
        login_id=login_id,
        business_name=business_name,
        password_hash=hash_password(password),
    )
    db.add(contractor)
    db.flush()
    return OperationResult.ok(f'{business_name} added successfully.', count=1, payload=contractor)


def update_contractor(
    db: Session,
    *,
    contractor_id: int,
    login_id: str,
    business_name: str,
    new_password: str | None = None,
) -> OperationResult:
    contractor = db.get(Contractor, contractor_id)
    if not contractor:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Contractor not found.')

    login_id = _clean(login_id)
    business_name = _clean(business_name)
    if not login_id or not business_name:
        return OperationResult.fail(LedgerError.INVALID_INPUT, 'Contractor ID and business name are required.')
    if new_password:
        problem = password_problem(new_password)
        if problem:
            return OperationResult.fail(LedgerError.INVALID_INPUT, problem)
    if login_id_in_use(db, login_id, exclude_contractor_id=contractor.id):
        return OperationResult.fail(LedgerError.DUPLICATE_LOGIN_ID, f'Login ID {login_id} is already in use.')

    if business_name != contractor.business_name:
        db.execute(
            update(Employee)
            .where(Employee.contractor_name == contractor.business_name)
            .values(contractor_name=business_name)
            .execution_options(synchronize_session='fetch')
        )
    contractor.login_id = login_id
    contractor.business_name = business_name
    if new_password:
        contractor.password_hash = hash_password(new_password)
    db.flush()
    return OperationResult.ok(f'{business_name} updated successfully.', count=1, payload=contractor)


def delete_contractor(db: Session, *, contractor_id: int) -> OperationResult:
    contractor = db.get(Contractor, contractor_id)
    if not contractor:
        return OperationResult.fail(LedgerError.NOT_FOUND, 'Contractor not found.')

    business_name = contractor.business_name
    db.execute(
        update(Employee)
        .where(Employee.contractor_name == business_name)
        .values(contractor_name=None)
        .execution_options(synchronize_session='fetch')
    )
    removed_coupons = db.execute(
        delete(Coupon).where(Coupon.contractor_id == contractor_id).execution_options(synchronize_session='fetch')
    ).rowcount or 0
    db.delete(contractor)
    db.flush()
    logger.info('Deleted contractor %s with %s coupons', contractor_id, removed_coupons)
    return OperationResult.ok(f'{business_name} deleted.', count=removed_coupons)
