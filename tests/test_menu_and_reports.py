from __future__ import annotations

import unittest
from datetime import date, datetime, timezone

from helpers import DatabaseTestCase

from canteen.models import CouponType
from canteen.services import coupon_ledger_service as ledger
from canteen.services import notification_service
from canteen.services.menu_service import get_menu_for_date, list_menus, upsert_menu
from canteen.services.report_service import (
    admin_totals,
    canteen_summary,
    contractor_dashboard,
    employee_dashboard,
    redeemed_for_day,
    redemption_history,
)
from canteen.services.results import LedgerError


class MenuServiceTests(DatabaseTestCase):
    def test_create_then_update(self) -> None:
        created = upsert_menu(self.db, menu_id='2025-06-01', breakfast='Idli', lunch='Thali', dinner='', snacks=None)
        updated = upsert_menu(self.db, menu_id='2025-06-01', breakfast='Poha', lunch='Thali')

        self.assertEqual(created.message, 'Menu for 2025-06-01 created.')
        self.assertEqual(updated.message, 'Menu for 2025-06-01 updated.')
        menu = get_menu_for_date(self.db, '2025-06-01')
        self.assertEqual(menu.breakfast, 'Poha')
        self.assertIsNone(menu.dinner)
        self.assertEqual(menu.date, datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc))
        self.assertEqual([m.id for m in list_menus(self.db)], ['2025-06-01'])

    def test_invalid_date(self) -> None:
        result = upsert_menu(self.db, menu_id='06/01/2025', breakfast='Idli')

        self.assertEqual(result.error, LedgerError.INVALID_INPUT)
        self.assertIsNone(get_menu_for_date(self.db, '06/01/2025'))


class NotificationServiceTests(DatabaseTestCase):
    def test_mark_read_is_scoped_to_owner(self) -> None:
        employee = self.make_employee()
        other = self.make_employee(name='Bo Chen', login_id='emp002')
        note = notification_service.create_notification(self.db, employee_id=employee.id, message='Hello')

        self.assertFalse(notification_service.mark_notification_read(self.db, notification_id=note.id, employee_id=other.id))
        self.assertTrue(notification_service.mark_notification_read(self.db, notification_id=note.id, employee_id=employee.id))
        self.assertEqual(notification_service.unread_count(self.db, employee_id=employee.id), 0)

    def test_mark_all_read(self) -> None:
        employee = self.make_employee()
        for message in ('one', 'two', 'three'):
            notification_service.create_notification(self.db, employee_id=employee.id, message=message)

        self.assertEqual(notification_service.mark_all_read(self.db, employee_id=employee.id), 3)
        self.assertEqual(notification_service.unread_count(self.db, employee_id=employee.id), 0)


class ReportServiceTests(DatabaseTestCase):
    def test_dashboards_after_redemptions(self) -> None:
        employee = self.make_employee()
        ledger.issue_employee_batch(self.db, employee_id=employee.id, coupon_type=CouponType.BREAKFAST)
        ledger.issue_employee_batch(self.db, employee_id=employee.id, coupon_type=CouponType.LUNCH_DINNER)
        for coupon in ledger.next_available_coupons(self.db, employee_id=employee.id):
            self.assertTrue(ledger.redeem_by_code(self.db, code=coupon.redemption_code).success)
        guest = ledger.generate_guest_pass(self.db, employee_id=employee.id, coupon_type=CouponType.BREAKFAST).payload
        ledger.redeem_by_code(self.db, code=guest.redemption_code)

        dashboard = employee_dashboard(self.db, employee_id=employee.id)
        self.assertEqual(dashboard['total'], 50)
        self.assertEqual(dashboard['used'], 2)
        self.assertEqual(dashboard['remaining'], 48)
        self.assertEqual(dashboard['guest_generated'], 1)
        self.assertEqual(dashboard['guest_redeemed'], 1)
        self.assertEqual(len(dashboard['history']), 2)

        summary = canteen_summary(self.db)
        self.assertEqual(summary['today_breakfast'], 2)
        self.assertEqual(summary['today_lunch_dinner'], 1)
        self.assertEqual(summary['month_breakfast'], 2)

        totals = admin_totals(self.db)
        self.assertEqual(totals['total_issued'], 51)
        self.assertEqual(totals['total_redeemed'], 3)
        self.assertEqual(totals['employees'], 1)

        groups = redeemed_for_day(self.db, day=datetime.now(tz=timezone.utc).date())
        self.assertEqual(list(groups), ['Breakfast', 'Lunch/Dinner'])
        self.assertEqual(sorted(row['holder'] for row in groups['Breakfast']), ['Asha Rao', 'Guest of Asha Rao'])
        self.assertEqual(len(redemption_history(self.db)), 3)
        self.assertEqual(redeemed_for_day(self.db, day=date(2000, 1, 1)), {})

    def test_contractor_dashboard(self) -> None:
        contractor = self.make_contractor()
        worker = self.make_worker(contractor)
        ledger.issue_contractor_batch(self.db, contractor_id=contractor.id, coupon_type=CouponType.SNACKS, quantity=3)
        assigned = ledger.assign_from_pool(
            self.db,
            contractor_id=contractor.id,
            employee_id=worker.id,
            coupon_type=CouponType.SNACKS,
            quantity=2,
        ).payload
        ledger.redeem_by_code(self.db, code=assigned[0].redemption_code)

        dashboard = contractor_dashboard(self.db, contractor=contractor)

        self.assertEqual(dashboard['pool']['Snacks'], 1)
        self.assertEqual(dashboard['pool']['Breakfast'], 0)
        self.assertEqual(dashboard['assigned_outstanding'], 1)
        self.assertEqual(dashboard['assigned_redeemed'], 1)
        self.assertEqual([e.id for e in dashboard['employees']], [worker.id])


if __name__ == '__main__':
    unittest.main()
