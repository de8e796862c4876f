from __future__ import annotations

import unittest

from sqlalchemy.orm import Session, sessionmaker

from canteen.db import build_engine, init_db
from canteen.models import EmployeeRole
from canteen.services import registry_service as registry

MEMORY_URL = 'sqlite+pysqlite:///:memory:'


class DatabaseTestCase(unittest.TestCase):
    """Gives every test its own empty in-memory database."""

    def setUp(self) -> None:
        self.engine = build_engine(MEMORY_URL, memory=True)
        init_db(bind=self.engine)
        self.session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self.db: Session = self.session_factory()

    def tearDown(self) -> None:
        self.db.close()
        self.engine.dispose()

    def make_employee(self, name='Asha Rao', login_id='emp001', password='secret1', department='Production', email=None):
        result = registry.add_employee(
            self.db,
            name=name,
            login_id=login_id,
            password=password,
            role=EmployeeRole.EMPLOYEE,
            email=email,
            department=department,
        )
        self.assertTrue(result.success, result.message)
        return result.payload

    def make_contractor(self, business_name='Acme Services', login_id='acme01', password='secret1'):
        result = registry.add_contractor(self.db, login_id=login_id, business_name=business_name, password=password)
        self.assertTrue(result.success, result.message)
        return result.payload

    def make_worker(self, contractor, name='Ravi Kumar', login_id='cw001', password='secret1'):
        result = registry.add_employee(
            self.db,
            name=name,
            login_id=login_id,
            password=password,
            role=EmployeeRole.CONTRACTUAL_EMPLOYEE,
            contractor_name=contractor.business_name,
        )
        self.assertTrue(result.success, result.message)
        return result.payload

    def make_account(self, role, name='Morgan Lee', login_id='mgr01', password='secret1'):
        result = registry.add_employee(self.db, name=name, login_id=login_id, password=password, role=role)
        self.assertTrue(result.success, result.message)
        return result.payload
