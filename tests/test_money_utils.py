from __future__ import annotations

import unittest
from decimal import Decimal

from dairy_portal.services.money_utils import (
    ROUNDING_WHOLE_UP,
    format_amount,
    format_quantity,
    money,
    parse_decimal,
    round_whole,
)


class MoneyUtilsTests(unittest.TestCase):
    def test_money_rounds_half_up_to_cents_by_default(self) -> None:
        self.assertEqual(money(Decimal('2.345'), policy='CENTS'), Decimal('2.35'))
        self.assertEqual(money(Decimal('137.5') * Decimal('1.25'), policy='CENTS'), Decimal('171.88'))

    def test_money_whole_up_policy_rounds_to_ceiling(self) -> None:
        self.assertEqual(money(Decimal('110.01'), policy=ROUNDING_WHOLE_UP), Decimal('111.00'))
        self.assertEqual(money(Decimal('110'), policy=ROUNDING_WHOLE_UP), Decimal('110.00'))

    def test_money_rejects_unknown_policy(self) -> None:
        with self.assertRaises(ValueError):
            money(Decimal('1'), policy='BANKERS')

    def test_round_whole_is_half_up(self) -> None:
        self.assertEqual(round_whole(Decimal('349.50')), 350)
        self.assertEqual(round_whole(Decimal('349.49')), 349)

    def test_formatting(self) -> None:
        self.assertEqual(format_amount(Decimal('125')), '125.00')
        self.assertEqual(format_quantity(Decimal('2.500')), '2.5')
        self.assertEqual(format_quantity(Decimal('2.000')), '2')

    def test_parse_decimal_validation(self) -> None:
        self.assertEqual(parse_decimal(' 1.5 ', field='Quantity'), Decimal('1.5'))
        self.assertIsNone(parse_decimal('', field='Price', allow_blank=True))
        with self.assertRaisesRegex(ValueError, 'Quantity is required'):
            parse_decimal('', field='Quantity')
        with self.assertRaisesRegex(ValueError, 'must be a number'):
            parse_decimal('abc', field='Quantity')
        with self.assertRaisesRegex(ValueError, 'greater than zero'):
            parse_decimal('0', field='Amount', allow_zero=False)
        with self.assertRaisesRegex(ValueError, 'cannot be negative'):
            parse_decimal('-2', field='Quantity')


if __name__ == '__main__':
    unittest.main()
