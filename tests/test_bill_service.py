from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from dairy_portal.models import TimeOfDay
from dairy_portal.services.bill_service import (
    BillCustomer,
    BillDeliveryInput,
    BillGroceryLine,
    CustomerBill,
    build_monthly_bill,
    load_monthly_bill,
    month_bounds,
    resolve_time_of_day,
)
from tests.db_support import add_customer, add_delivery, add_milk_type, add_payment, make_session

MARCH = date(2025, 3, 1)


def _scenario_a_rows() -> list[BillDeliveryInput]:
    return [
        BillDeliveryInput(
            delivery_date=date(2025, 3, 5),
            quantity=Decimal('2'),
            milk_amount=Decimal('110.00'),
            time_of_day=TimeOfDay.MORNING,
            grocery_items=(BillGroceryLine(name='Bread', price=Decimal('40.00')),),
        )
    ]


class MonthlyBillBuilderTests(unittest.TestCase):
    def test_scenario_a_single_delivery_with_grocery(self) -> None:
        bill = build_monthly_bill(month=date(2025, 3, 17), deliveries=_scenario_a_rows())

        day = bill.day(5)
        self.assertEqual(day.total_milk_quantity, Decimal('2'))
        self.assertEqual(day.total_milk_amount, Decimal('110.00'))
        self.assertEqual(day.total_grocery_amount, Decimal('40.00'))
        self.assertEqual(bill.total_monthly_amount, Decimal('150.00'))
        self.assertEqual(bill.grand_total, Decimal('150.00'))
        self.assertEqual(bill.month_start, MARCH)

    def test_scenario_b_prior_balance_is_added(self) -> None:
        bill = build_monthly_bill(month=MARCH, deliveries=_scenario_a_rows(), prior_pending_balance=Decimal('200.00'))
        self.assertEqual(bill.grand_total, Decimal('350.00'))

    def test_scenario_c_payment_in_month_reduces_balance(self) -> None:
        bill = build_monthly_bill(month=MARCH, deliveries=_scenario_a_rows(), prior_pending_balance=Decimal('200.00'))
        customer_bill = CustomerBill(
            customer=BillCustomer(id=1, name='Asha', address='12 Station Road'),
            bill=bill,
            monthly_payments=Decimal('150.00'),
        )
        self.assertEqual(customer_bill.total_outstanding, Decimal('350.00'))
        self.assertEqual(customer_bill.balance_after_payment, Decimal('200.00'))

    def test_scenario_d_same_day_evening_rows_merge(self) -> None:
        rows = [
            BillDeliveryInput(
                delivery_date=date(2025, 3, 9),
                quantity=Decimal('1'),
                milk_amount=Decimal('50.00'),
                notes='Evening delivery',
            ),
            BillDeliveryInput(
                delivery_date=date(2025, 3, 9),
                quantity=Decimal('1.5'),
                milk_amount=Decimal('75.00'),
                notes='evening top-up',
            ),
        ]
        day = build_monthly_bill(month=MARCH, deliveries=rows).day(9)

        self.assertEqual(len(day.entries), 1)
        entry = day.entries[0]
        self.assertEqual(entry.time_of_day, TimeOfDay.EVENING)
        self.assertEqual(entry.milk_quantity, Decimal('2.5'))
        self.assertEqual(entry.milk_amount, Decimal('125.00'))
        self.assertEqual(day.evening_quantity, Decimal('2.5'))
        self.assertEqual(day.morning_quantity, Decimal('0'))

    def test_scenario_e_empty_month_is_all_gaps(self) -> None:
        bill = build_monthly_bill(month=date(2024, 2, 10), deliveries=[])
        self.assertEqual(bill.days_in_month, 29)
        self.assertTrue(all(day is None for day in bill.days))
        self.assertEqual(bill.total_milk, Decimal('0'))
        self.assertEqual(bill.grand_total, Decimal('0'))
        self.assertEqual(bill.delivery_days, [])

    def test_morning_rows_merge_and_concatenate_groceries(self) -> None:
        rows = [
            BillDeliveryInput(
                delivery_date=date(2025, 3, 2),
                quantity=Decimal('1'),
                milk_amount=Decimal('60.00'),
                time_of_day=TimeOfDay.MORNING,
                grocery_items=(BillGroceryLine(name='Bread', price=Decimal('40.00')),),
                milk_type_name='Cow Milk',
            ),
            BillDeliveryInput(
                delivery_date=date(2025, 3, 2),
                quantity=Decimal('0'),
                milk_amount=Decimal('0'),
                time_of_day=TimeOfDay.MORNING,
                grocery_items=(BillGroceryLine(name='Paneer', price=Decimal('90.00')),),
            ),
            BillDeliveryInput(
                delivery_date=date(2025, 3, 2),
                quantity=Decimal('0.5'),
                milk_amount=Decimal('30.00'),
                time_of_day=TimeOfDay.EVENING,
            ),
        ]
        day = build_monthly_bill(month=MARCH, deliveries=rows).day(2)

        self.assertEqual([entry.label for entry in day.entries], ['Morning', 'Evening'])
        morning = day.entries[0]
        self.assertEqual([item.name for item in morning.grocery_items], ['Bread', 'Paneer'])
        self.assertEqual(morning.grocery_total, Decimal('130.00'))
        self.assertEqual(day.total_milk_quantity, Decimal('1.5'))
        self.assertEqual(day.total_milk_amount, Decimal('90.00'))
        self.assertEqual(day.total_grocery_amount, Decimal('130.00'))
        self.assertEqual(day.average_rate, Decimal('60'))

    def test_month_identities_hold(self) -> None:
        rows = _scenario_a_rows() + [
            BillDeliveryInput(delivery_date=date(2025, 3, 31), quantity=Decimal('1.25'), milk_amount=Decimal('68.75')),
        ]
        bill = build_monthly_bill(month=MARCH, deliveries=rows, prior_pending_balance=Decimal('12.50'))

        self.assertEqual(bill.total_monthly_amount, bill.total_milk_amount + bill.total_grocery_amount)
        self.assertEqual(bill.grand_total, bill.total_monthly_amount + bill.prior_pending_balance)
        self.assertEqual(bill.total_milk, Decimal('3.25'))

    def test_rows_outside_the_month_are_ignored(self) -> None:
        rows = _scenario_a_rows() + [
            BillDeliveryInput(delivery_date=date(2025, 4, 1), quantity=Decimal('9'), milk_amount=Decimal('500.00')),
        ]
        bill = build_monthly_bill(month=MARCH, deliveries=rows)
        self.assertEqual(bill.total_monthly_amount, Decimal('150.00'))

    def test_building_twice_is_identical(self) -> None:
        rows = _scenario_a_rows()
        first = build_monthly_bill(month=MARCH, deliveries=rows, prior_pending_balance=Decimal('5'))
        second = build_monthly_bill(month=MARCH, deliveries=rows, prior_pending_balance=Decimal('5'))
        self.assertEqual(first, second)

    def test_month_bounds_handles_leap_years(self) -> None:
        self.assertEqual(month_bounds(date(2024, 2, 14)), (date(2024, 2, 1), date(2024, 2, 29)))
        self.assertEqual(month_bounds(date(2025, 12, 31)), (date(2025, 12, 1), date(2025, 12, 31)))

    def test_stored_time_of_day_wins_over_notes(self) -> None:
        self.assertEqual(resolve_time_of_day(TimeOfDay.MORNING, 'evening round'), TimeOfDay.MORNING)
        self.assertEqual(resolve_time_of_day('EVENING', None), TimeOfDay.EVENING)
        self.assertEqual(resolve_time_of_day(None, 'Left at gate - EVENING'), TimeOfDay.EVENING)
        self.assertEqual(resolve_time_of_day(None, None), TimeOfDay.MORNING)


class LoadMonthlyBillTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.asha = add_customer(self.db, 'Asha')
        self.milk = add_milk_type(self.db, price='55.00')

    def tearDown(self) -> None:
        self.db.close()

    def test_scenarios_a_to_c_from_stored_rows(self) -> None:
        add_delivery(self.db, self.asha, day=date(2025, 2, 10), total='200.00')
        add_delivery(
            self.db,
            self.asha,
            day=date(2025, 3, 5),
            total='150.00',
            quantity='2',
            price='55.00',
            milk_type=self.milk,
            groceries=(('Bread', '40.00'),),
        )
        add_payment(self.db, self.asha, day=date(2025, 3, 20), amount='150.00', method='UPI')

        bill = load_monthly_bill(self.db, customer_id=self.asha.id, month=date(2025, 3, 12))

        day = bill.bill.day(5)
        self.assertEqual(day.total_milk_amount, Decimal('110.00'))
        self.assertEqual(day.total_grocery_amount, Decimal('40.00'))
        self.assertEqual(day.entries[0].milk_type_names, ('Cow Milk',))
        self.assertEqual(bill.bill.prior_pending_balance, Decimal('200.00'))
        self.assertEqual(bill.bill.grand_total, Decimal('350.00'))
        self.assertEqual(bill.monthly_payments, Decimal('150.00'))
        self.assertEqual(bill.balance_after_payment, Decimal('200.00'))
        self.assertEqual(bill.previous_payments, ())

    def test_scenario_e_customer_without_history(self) -> None:
        bill = load_monthly_bill(self.db, customer_id=self.asha.id, month=MARCH)
        self.assertEqual(bill.bill.prior_pending_balance, Decimal('0'))
        self.assertEqual(bill.bill.grand_total, Decimal('0'))
        self.assertEqual(bill.bill.delivery_days, [])

    def test_previous_payments_are_limited_to_five_before_the_month(self) -> None:
        for day in range(1, 8):
            add_payment(self.db, self.asha, day=date(2025, 2, day), amount=f'{day}.00')
        add_payment(self.db, self.asha, day=date(2025, 3, 1), amount='99.00')

        bill = load_monthly_bill(self.db, customer_id=self.asha.id, month=MARCH)

        self.assertEqual([p.payment_date.day for p in bill.previous_payments], [7, 6, 5, 4, 3])

    def test_unknown_customer_raises_lookup_error(self) -> None:
        with self.assertRaises(LookupError):
            load_monthly_bill(self.db, customer_id=404, month=MARCH)


if __name__ == '__main__':
    unittest.main()
