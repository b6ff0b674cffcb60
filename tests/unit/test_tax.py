#!/usr/bin/env python3
"""
VAT Unit Tests
"""

import unittest
import sys
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from parkfare.domain.models import Money, Percentage, DomainValidationError
from parkfare.domain.discounts import DiscountRule
from parkfare.domain.tax import VATCalculator, VATCalculation


class TestVATCalculator(unittest.TestCase):
    """Unit tests for VAT calculation"""

    def setUp(self):
        """Set up test data"""
        self.calculator = VATCalculator()
        self.senior = DiscountRule.senior_citizen()
        self.promo = DiscountRule("Promo", "custom", 10)

    def test_default_rate(self):
        """Test 100 with no discounts gives 12 VAT and 112 total"""
        calculation = self.calculator.calculate(Money('100.00'))

        self.assertEqual(calculation.net_amount, Money('100.00'))
        self.assertEqual(calculation.vat_amount, Money('12.00'))
        self.assertEqual(calculation.total_amount, Money('112.00'))
        self.assertEqual(calculation.vat_rate, Percentage(12))
        self.assertFalse(calculation.is_exempt)

    def test_vat_rounds_half_up(self):
        """Test VAT is rounded to the cent"""
        test_cases = [
            (Money('0.04'), Money('0.00')),     # 0.0048
            (Money('0.05'), Money('0.01')),     # 0.006
            (Money('10.01'), Money('1.20')),    # 1.2012
            (Money('20.83'), Money('2.50')),    # 2.4996
        ]

        for amount, expected in test_cases:
            self.assertEqual(self.calculator.calculate(amount).vat_amount, expected,
                             msg=f"Failed for {amount}")

    def test_discounts_reduce_taxable_amount(self):
        """Test non-exempt discounts are taken off before VAT"""
        applied = [self.promo.apply_to(Money('100.00'))]
        calculation = self.calculator.calculate(Money('100.00'), applied)

        self.assertEqual(calculation.net_amount, Money('90.00'))
        self.assertEqual(calculation.vat_amount, Money('10.80'))
        self.assertEqual(calculation.total_amount, Money('100.80'))

    def test_discounts_above_amount_clamp_to_zero(self):
        """Test the taxable amount never goes negative"""
        big = DiscountRule("All", "custom", 100)
        applied = [big.apply_to(Money(50)), self.promo.apply_to(Money(50))]
        calculation = self.calculator.calculate(Money(50), applied)

        self.assertTrue(calculation.net_amount.is_zero())
        self.assertTrue(calculation.total_amount.is_zero())

    def test_exempt_discount_waives_vat(self):
        """Test a single exempt discount makes the whole calculation exempt"""
        applied = [self.promo.apply_to(Money(150)), self.senior.apply_to(Money(150))]
        calculation = self.calculator.calculate(Money('150.00'), applied)

        self.assertTrue(calculation.is_exempt)
        self.assertTrue(calculation.vat_amount.is_zero())
        self.assertEqual(calculation.vat_rate, Percentage(0))
        self.assertEqual(calculation.total_amount, Money('150.00'))
        self.assertEqual([d.name for d in calculation.exemption_reasons], ["Senior Citizen Discount"])

    def test_calculate_net(self):
        """Test VAT on an already discounted amount"""
        applied = [self.senior.apply_to(Money(150))]
        exempt = self.calculator.calculate_net(Money('120.00'), applied)
        self.assertEqual(exempt.total_amount, Money('120.00'))
        self.assertTrue(exempt.is_exempt)

        taxed = self.calculator.calculate_net(Money('90.00'), [self.promo.apply_to(Money(100))])
        self.assertEqual(taxed.net_amount, Money('90.00'))
        self.assertEqual(taxed.vat_amount, Money('10.80'))

    def test_custom_rate(self):
        """Test configured and per-call rates"""
        calculator = VATCalculator(Percentage(Decimal('5')))
        self.assertEqual(calculator.calculate(Money(100)).vat_amount, Money(5))

        calculation = self.calculator.calculate_with_custom_rate(Money(100), Percentage(0))
        self.assertTrue(calculation.vat_amount.is_zero())
        self.assertFalse(calculation.is_exempt)

        with self.assertRaises(DomainValidationError):
            VATCalculator(Decimal('12'))

    def test_total_invariant(self):
        """Test net plus VAT always equals total"""
        for amount in ('0', '0.01', '1.99', '33.33', '150', '999.99'):
            for applied in ([], [self.promo.apply_to(Money(amount))], [self.senior.apply_to(Money(amount))]):
                calculation = self.calculator.calculate(Money(amount), applied)
                self.assertEqual(calculation.net_amount.add(calculation.vat_amount), calculation.total_amount)

    def test_inconsistent_calculation_rejected(self):
        """Test a VAT calculation that does not add up is refused"""
        with self.assertRaises(DomainValidationError):
            VATCalculation(Money(100), Money(12), Money(113), Percentage(12), False)
        with self.assertRaises(DomainValidationError):
            VATCalculation(Money(100), Money(12), Money(112), Percentage(12), True)

    def test_breakdown(self):
        """Test breakdown lists exemption reasons"""
        applied = [self.senior.apply_to(Money(100))]
        breakdown = self.calculator.calculate(Money(100), applied).get_breakdown()

        self.assertTrue(breakdown["is_exempt"])
        self.assertEqual(breakdown["vat_rate"], "0")
        self.assertEqual(breakdown["exemption_reasons"], [{"type": "senior", "name": "Senior Citizen Discount"}])


if __name__ == '__main__':
    unittest.main()
