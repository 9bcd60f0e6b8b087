from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from dairy_portal.services.customer_service import create_customer, delete_customer, list_customers, update_customer
from dairy_portal.services.dashboard_service import get_dashboard_stats
from dairy_portal.services.milk_type_service import create_milk_type, delete_milk_type, update_milk_type
from tests.db_support import add_customer, add_delivery, add_milk_type, make_session


class CustomerServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()

    def tearDown(self) -> None:
        self.db.close()

    def test_create_normalizes_and_rejects_duplicates(self) -> None:
        customer = create_customer(self.db, name='  Asha   Patel ', address=' 12 Station Road ', phone_number='')
        self.assertEqual(customer.name, 'Asha Patel')
        self.assertEqual(customer.address, '12 Station Road')
        self.assertIsNone(customer.phone_number)

        with self.assertRaisesRegex(ValueError, 'already exists'):
            create_customer(self.db, name='asha patel', address='elsewhere')
        with self.assertRaisesRegex(ValueError, 'Phone number'):
            create_customer(self.db, name='Ravi', address='x', phone_number='call me')

    def test_update_and_search(self) -> None:
        asha = create_customer(self.db, name='Asha', address='Station Road', phone_number='+91 98765 43210')
        create_customer(self.db, name='Ravi', address='Lake View')

        update_customer(self.db, customer_id=asha.id, name='Asha P', address='Temple Street', phone_number='98765 43210')
        self.assertEqual([c.name for c in list_customers(self.db, search='temple')], ['Asha P'])
        self.assertEqual([c.name for c in list_customers(self.db)], ['Asha P', 'Ravi'])
        with self.assertRaises(LookupError):
            update_customer(self.db, customer_id=999, name='X', address='Y')

    def test_customer_with_history_cannot_be_deleted(self) -> None:
        asha = add_customer(self.db, 'Asha')
        ravi = add_customer(self.db, 'Ravi')
        add_delivery(self.db, asha, day=date(2025, 3, 1), total='10.00')

        with self.assertRaisesRegex(ValueError, 'cannot be deleted'):
            delete_customer(self.db, customer_id=asha.id)
        delete_customer(self.db, customer_id=ravi.id)
        self.assertEqual([c.name for c in list_customers(self.db)], ['Asha'])


class MilkTypeServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()

    def tearDown(self) -> None:
        self.db.close()

    def test_create_update_delete(self) -> None:
        milk = create_milk_type(self.db, name='Cow Milk', price_per_liter=Decimal('55.555'))
        self.assertEqual(milk.price_per_liter, Decimal('55.56'))

        with self.assertRaisesRegex(ValueError, 'greater than zero'):
            update_milk_type(self.db, milk_type_id=milk.id, name='Cow Milk', price_per_liter=Decimal('0'))
        update_milk_type(self.db, milk_type_id=milk.id, name='Cow Milk A2', price_per_liter=Decimal('70'))
        self.assertEqual(milk.name, 'Cow Milk A2')

        with self.assertRaisesRegex(ValueError, 'already exists'):
            create_milk_type(self.db, name='cow milk a2', price_per_liter=Decimal('60'))

        delete_milk_type(self.db, milk_type_id=milk.id)
        with self.assertRaises(LookupError):
            delete_milk_type(self.db, milk_type_id=milk.id)

    def test_milk_type_in_use_cannot_be_deleted(self) -> None:
        milk = add_milk_type(self.db)
        asha = add_customer(self.db)
        add_delivery(self.db, asha, day=date(2025, 3, 1), total='60.00', quantity='1', price='60', milk_type=milk)

        with self.assertRaisesRegex(ValueError, 'used by delivery records'):
            delete_milk_type(self.db, milk_type_id=milk.id)


class DashboardStatsTests(unittest.TestCase):
    def test_counts_and_pending_total(self) -> None:
        db = make_session()
        milk = add_milk_type(db)
        asha = add_customer(db, 'Asha')
        add_customer(db, 'Ravi')
        add_delivery(db, asha, day=date(2025, 3, 9), total='60.00', quantity='1', price='60', milk_type=milk)
        add_delivery(db, asha, day=date(2025, 3, 8), total='40.00')

        stats = get_dashboard_stats(db, today=date(2025, 3, 9))

        self.assertEqual(stats.total_customers, 2)
        self.assertEqual(stats.total_milk_types, 1)
        self.assertEqual(stats.todays_deliveries, 1)
        self.assertEqual(stats.customers_with_pending, 1)
        self.assertEqual(stats.total_pending_amount, Decimal('100.00'))
        # Rows were inserted without a cache refresh.
        self.assertEqual(stats.drifted_balances, 1)
        db.close()


if __name__ == '__main__':
    unittest.main()
