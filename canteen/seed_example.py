import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from canteen.config import settings
from canteen.db import SessionLocal, init_db
from canteen.models import CouponType, Employee, EmployeeRole, EmployeeStatus
from canteen.security.passwords import hash_password
from canteen.services import coupon_ledger_service as ledger
from canteen.services import registry_service as registry

logger = logging.getLogger(__name__)


def seed_super_admin(db: Session) -> Employee:
    admin = db.execute(
        select(Employee).where(Employee.login_id == settings.super_admin_login_id)
    ).scalar_one_or_none()
    if admin:
        return admin

    admin = Employee(
        id=1 if db.get(Employee, 1) is None else registry.next_id(db, Employee),
        login_id=settings.super_admin_login_id,
        name=settings.seed_admin_name,
        email=settings.seed_admin_email,
        password_hash=hash_password(settings.seed_admin_password),
        role=EmployeeRole.ADMIN,
        department='System',
        status=EmployeeStatus.ACTIVE,
    )
    db.add(admin)
    db.flush()
    logger.info('Seeded super admin %s', admin.login_id)
    return admin


def seed(db: Session) -> None:
    seed_super_admin(db)

    if not registry.login_id_in_use(db, 'canteen01'):
        registry.add_employee(
            db,
            name='Canteen Manager',
            login_id='canteen01',
            password='canteenpass',
            role=EmployeeRole.CANTEEN_MANAGER,
        )

    if not registry.login_id_in_use(db, 'emp001'):
        created = registry.add_employee(
            db,
            name='Asha Rao',
            login_id='emp001',
            password='employeepass',
            role=EmployeeRole.EMPLOYEE,
            email='asha.rao@example.com',
            department='Production',
        )
        ledger.issue_employee_batch(db, employee_id=created.payload.id, coupon_type=CouponType.LUNCH_DINNER)

    if not registry.login_id_in_use(db, 'contract01'):
        contractor = registry.add_contractor(
            db,
            login_id='contract01',
            business_name='Demo Facility Services',
            password='contractorpass',
        ).payload
        worker = registry.add_employee(
            db,
            name='Ravi Kumar',
            login_id='cw001',
            password='workerpass',
            role=EmployeeRole.CONTRACTUAL_EMPLOYEE,
            contractor_name=contractor.business_name,
        ).payload
        ledger.issue_contractor_batch(
            db,
            contractor_id=contractor.id,
            coupon_type=CouponType.LUNCH_DINNER,
            quantity=20,
        )
        ledger.assign_from_pool(
            db,
            contractor_id=contractor.id,
            employee_id=worker.id,
            coupon_type=CouponType.LUNCH_DINNER,
            quantity=5,
        )


if __name__ == '__main__':
    if settings.database_is_memory:
        raise SystemExit(
            'DATABASE_URL points at an in-memory database that is dropped on exit. '
            'Use a file or Postgres URL, or start the app with SEED_DEMO_DATA=true.'
        )
    init_db()
    with SessionLocal() as session:
        seed(session)
        session.commit()
    print('Seed data inserted/verified.')
