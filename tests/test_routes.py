from __future__ import annotations

import unittest
from unittest.mock import patch
from urllib.parse import parse_qs, urlsplit

from fastapi.testclient import TestClient

from helpers import DatabaseTestCase

from canteen.config import settings
from canteen.main import app
from canteen.models import CouponStatus, CouponType, Employee, EmployeeRole
from canteen.seed_example import seed_super_admin
from canteen.services import coupon_ledger_service as ledger
from canteen.services import registry_service as registry


class RouteTests(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        session_patch = patch('canteen.db.SessionLocal', self.session_factory)
        session_patch.start()
        self.addCleanup(session_patch.stop)

        seed_super_admin(self.db)
        self.employee = self.make_employee()
        self.manager = self.make_account(EmployeeRole.CANTEEN_MANAGER)
        self.db.commit()
        self.client = TestClient(app)

    def _csrf(self) -> str:
        if 'canteen_csrf' not in self.client.cookies:
            self.client.get('/login')
        return self.client.cookies['canteen_csrf']

    def _login(self, login_id: str, password: str):
        return self.client.post(
            '/login',
            data={'login_id': login_id, 'password': password, 'csrf_token': self._csrf()},
            follow_redirects=False,
        )

    def _banner(self, response) -> dict:
        return {key: values[0] for key, values in parse_qs(urlsplit(response.headers['location']).query).items()}

    def test_anonymous_requests_go_to_login(self) -> None:
        response = self.client.get('/admin', follow_redirects=False)

        self.assertEqual(response.status_code, 303)
        self.assertEqual(response.headers['location'], '/login')
        self.assertEqual(self.client.get('/healthz').text, 'ok')

    def test_login_page_sets_csrf_cookie_and_headers(self) -> None:
        response = self.client.get('/login')

        self.assertEqual(response.status_code, 200)
        self.assertIn('canteen_csrf', response.cookies)
        self.assertEqual(response.headers['x-content-type-options'], 'nosniff')

    def test_bad_credentials_rerender_login(self) -> None:
        response = self._login('emp001', 'wrong-pass')

        self.assertEqual(response.status_code, 401)
        self.assertIn('Invalid Login ID or Password. Please try again.', response.text)

    def test_post_without_csrf_is_rejected(self) -> None:
        response = self.client.post('/login', data={'login_id': 'emp001', 'password': 'secret1'})

        self.assertEqual(response.status_code, 403)

    def test_each_role_lands_on_its_home(self) -> None:
        self.assertEqual(self._login('admin01', 'superadmin').headers['location'], '/admin')
        self.assertEqual(self.client.get('/admin').status_code, 200)
        self.assertEqual(self.client.get('/admin/settings').status_code, 200)

        self.client.cookies.clear()
        self.assertEqual(self._login('emp001', 'secret1').headers['location'], '/employee')
        self.assertEqual(self.client.get('/employee').status_code, 200)
        blocked = self.client.get('/admin', follow_redirects=False)
        self.assertEqual(blocked.headers['location'], '/login')

        self.client.cookies.clear()
        self.assertEqual(self._login('mgr01', 'secret1').headers['location'], '/canteen-manager')
        self.assertEqual(self.client.get('/canteen-manager').status_code, 200)

    def test_admin_issues_and_manager_redeems(self) -> None:
        self._login('admin01', 'superadmin')
        response = self.client.post(
            f'/admin/employees/{self.employee.id}/coupons',
            data={'coupon_type': CouponType.BREAKFAST.value, 'csrf_token': self._csrf()},
            follow_redirects=False,
        )
        self.assertEqual(self._banner(response)['status'], 'success')

        with self.session_factory() as check:
            coupon = ledger.next_available_coupons(check, employee_id=self.employee.id)[0]

        self.client.cookies.clear()
        self._login('mgr01', 'secret1')
        redeemed = self.client.post(
            '/canteen-manager/redeem',
            data={'code': coupon.redemption_code, 'csrf_token': self._csrf()},
            follow_redirects=False,
        )
        again = self.client.post(
            '/canteen-manager/redeem',
            data={'code': coupon.redemption_code, 'csrf_token': self._csrf()},
            follow_redirects=False,
        )

        self.assertEqual(self._banner(redeemed)['message'], 'Coupon redeemed successfully for Asha Rao.')
        self.assertEqual(self._banner(again)['message'], 'This coupon has already been redeemed.')
        with self.session_factory() as check:
            self.assertEqual(ledger.get_coupon(check, coupon_id=coupon.coupon_id).status, CouponStatus.REDEEMED)

    def test_employee_qr_and_guest_pass(self) -> None:
        ledger.issue_employee_batch(self.db, employee_id=self.employee.id, coupon_type=CouponType.LUNCH_DINNER)
        self.db.commit()
        coupon = ledger.next_available_coupons(self.db, employee_id=self.employee.id)[0]

        self._login('emp001', 'secret1')
        qr = self.client.get(f'/employee/coupons/{coupon.coupon_id}/qr')
        guest = self.client.post(
            '/employee/guest-passes',
            data={'coupon_type': CouponType.BREAKFAST.value, 'csrf_token': self._csrf()},
            follow_redirects=False,
        )

        self.assertEqual(qr.status_code, 200)
        self.assertEqual(qr.headers['content-type'], 'image/png')
        self.assertTrue(guest.headers['location'].startswith('/employee?guest=CPN-'))
        page = self.client.get(guest.headers['location'])
        self.assertIn('wa.me', page.text)

    def test_employee_cannot_fetch_someone_elses_qr(self) -> None:
        other = self.make_employee(name='Bo Chen', login_id='emp002')
        ledger.issue_employee_batch(self.db, employee_id=other.id, coupon_type=CouponType.BREAKFAST)
        self.db.commit()
        coupon = ledger.next_available_coupons(self.db, employee_id=other.id)[0]

        self._login('emp001', 'secret1')

        self.assertEqual(self.client.get(f'/employee/coupons/{coupon.coupon_id}/qr').status_code, 404)

    def test_settings_page_lists_failed_sign_ins(self) -> None:
        self._login('ghost01', 'whatever')
        self._login('admin01', 'superadmin')

        page = self.client.get('/admin/settings')

        self.assertEqual(page.status_code, 200)
        self.assertIn('ghost01', page.text)
        self.assertIn('INVALID_CREDENTIALS', page.text)
        self.assertIn('AUTH_LOGIN', page.text)

    def test_logout_revokes_session(self) -> None:
        self._login('emp001', 'secret1')
        self.client.post('/logout', data={'csrf_token': self._csrf()}, follow_redirects=False)

        response = self.client.get('/employee', follow_redirects=False)

        self.assertEqual(response.headers['location'], '/login')

    def test_plain_admin_cannot_promote_to_account_roles(self) -> None:
        self.make_account(EmployeeRole.ADMIN, name='Dana Cruz', login_id='adm02')
        self.db.commit()
        self._login('adm02', 'secret1')

        response = self.client.post(
            f'/admin/employees/{self.employee.id}/update',
            data={
                'name': 'Asha Rao',
                'login_id': 'emp001',
                'role': EmployeeRole.CANTEEN_MANAGER.value,
                'department': 'Production',
                'csrf_token': self._csrf(),
            },
            follow_redirects=False,
        )

        banner = self._banner(response)
        self.assertEqual(banner['status'], 'error')
        self.assertEqual(banner['message'], 'Only the super admin can manage admin accounts.')
        with self.session_factory() as check:
            self.assertEqual(check.get(Employee, self.employee.id).role, EmployeeRole.EMPLOYEE)

    def test_wrong_role_is_sent_to_its_fallback(self) -> None:
        self.make_account(EmployeeRole.ADMIN, name='Dana Cruz', login_id='adm02')
        self.db.commit()

        self._login('adm02', 'secret1')
        settings_page = self.client.get('/admin/settings', follow_redirects=False)
        self.assertEqual(settings_page.status_code, 303)
        self.assertEqual(settings_page.headers['location'], '/admin')

        self.client.cookies.clear()
        self._login('emp001', 'secret1')
        contractor_page = self.client.get('/contractor', follow_redirects=False)
        self.assertEqual(contractor_page.status_code, 303)
        self.assertEqual(contractor_page.headers['location'], '/login')

    def test_contractor_short_pool_is_reported_before_ownership(self) -> None:
        contractor = self.make_contractor()
        ledger.issue_contractor_batch(
            self.db, contractor_id=contractor.id, coupon_type=CouponType.LUNCH_DINNER, quantity=2
        )
        self.db.commit()
        self._login('acme01', 'secret1')

        response = self.client.post(
            '/contractor/assign',
            data={
                'employee_id': str(self.employee.id),
                'coupon_type': CouponType.LUNCH_DINNER.value,
                'quantity': '5',
                'csrf_token': self._csrf(),
            },
            follow_redirects=False,
        )

        self.assertEqual(
            self._banner(response)['message'],
            'Not enough available Lunch/Dinner coupons. You have 2, but tried to assign 5.',
        )

    def test_analytics_sends_every_coupon(self) -> None:
        ledger.issue_employee_batch(self.db, employee_id=self.employee.id, coupon_type=CouponType.BREAKFAST)
        ledger.issue_employee_batch(self.db, employee_id=self.employee.id, coupon_type=CouponType.LUNCH_DINNER)
        self.db.commit()
        self._login('admin01', 'superadmin')

        with patch('canteen.routers.admin.generate_insights', return_value='Breakfast is popular.') as insights:
            page = self.client.post(
                '/admin/analytics',
                data={'question': 'What is popular?', 'csrf_token': self._csrf()},
            )

        self.assertEqual(page.status_code, 200)
        self.assertIn('Breakfast is popular.', page.text)
        question, _employees, coupons = insights.call_args.args
        self.assertEqual(question, 'What is popular?')
        self.assertEqual(len(coupons), 50)

    def test_startup_loads_demo_data_when_enabled(self) -> None:
        with patch('canteen.main.init_db'), patch('canteen.main.SessionLocal', self.session_factory), patch.object(
            settings, 'seed_demo_data', True
        ):
            with TestClient(app) as client:
                self.assertEqual(client.get('/healthz').text, 'ok')

        with self.session_factory() as check:
            self.assertTrue(registry.login_id_in_use(check, 'canteen01'))
            self.assertTrue(registry.login_id_in_use(check, 'contract01'))


if __name__ == '__main__':
    unittest.main()
