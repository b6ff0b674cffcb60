#!/usr/bin/env python3
"""
Pricing Unit Tests

Tests for the pricing hierarchy and the hierarchical pricing strategy.
"""

import unittest
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from parkfare.domain.models import Money, TimeRange, VehicleType, DomainValidationError
from parkfare.domain.pricing import (
    PricingConfig, PricingChain, PricingSource, HierarchyLevel,
    HierarchicalPricingStrategy, PricingDefaults, resolve_base_amount
)


def window(start: datetime, minutes: int) -> TimeRange:
    return TimeRange(start, start + timedelta(minutes=minutes))


class TestPricingChain(unittest.TestCase):
    """Unit tests for the pricing override chain"""

    def test_location_required(self):
        """Test a chain cannot be built without a location rate"""
        with self.assertRaises(DomainValidationError):
            PricingChain(location=None)

        result = PricingChain.create(None)
        self.assertFalse(result.is_valid)

    def test_nearest_level_wins(self):
        """Test the most specific configured level is used"""
        test_cases = [
            (dict(), HierarchyLevel.LOCATION, Decimal('50.00')),
            (dict(section=PricingConfig.hourly(60)), HierarchyLevel.SECTION, Decimal('60.00')),
            (dict(section=PricingConfig.hourly(60), zone=PricingConfig.hourly(70)),
             HierarchyLevel.ZONE, Decimal('70.00')),
            (dict(zone=PricingConfig.hourly(70), spot=PricingConfig.hourly(80)),
             HierarchyLevel.SPOT, Decimal('80.00')),
        ]

        for overrides, expected_level, expected_rate in test_cases:
            chain = PricingChain(location=PricingConfig.hourly(50), **overrides)
            resolution = chain.resolve()
            self.assertEqual(resolution.source_level, expected_level, msg=f"Failed for {overrides}")
            self.assertEqual(chain.effective_config.base_rate.amount, expected_rate)

    def test_own_versus_inherited(self):
        """Test a config at the target level is own, anything above is inherited"""
        inherited = PricingChain(location=PricingConfig.hourly(50)).resolve()
        self.assertEqual(inherited.source, PricingSource.INHERITED)
        self.assertTrue(inherited.is_inherited)

        own = PricingChain(location=PricingConfig.hourly(50), spot=PricingConfig.hourly(65)).resolve()
        self.assertEqual(own.source, PricingSource.OWN)

        zone_chain = PricingChain(
            location=PricingConfig.hourly(50),
            zone=PricingConfig.hourly(55),
            target_level=HierarchyLevel.ZONE
        )
        self.assertEqual(zone_chain.resolve().source, PricingSource.OWN)

    def test_lookup_order(self):
        """Test levels are searched from spot to location"""
        self.assertEqual(
            HierarchyLevel.lookup_order(),
            [HierarchyLevel.SPOT, HierarchyLevel.ZONE, HierarchyLevel.SECTION, HierarchyLevel.LOCATION]
        )


class TestHierarchicalPricingStrategy(unittest.TestCase):
    """Unit tests for the hierarchical pricing strategy"""

    def setUp(self):
        """Set up test data"""
        self.strategy = HierarchicalPricingStrategy()
        self.chain = PricingChain(location=PricingConfig.hourly(50))

    def test_off_peak_car_booking(self):
        """Test 2.5 hours off-peak for a car bills 3 hours at 50"""
        calculation = self.strategy.calculate(
            self.chain, window(datetime(2024, 3, 1, 10, 0), 150), VehicleType.CAR
        )

        self.assertEqual(calculation.billable_hours, 3)
        self.assertEqual(calculation.hourly_rate, Decimal('50'))
        self.assertEqual(calculation.subtotal, Money('150.00'))
        self.assertEqual(calculation.source_level, HierarchyLevel.LOCATION)

    def test_motorcycle_at_peak(self):
        """Test motorcycle rate is halved then raised by the peak multiplier"""
        calculation = self.strategy.calculate(
            self.chain, window(datetime(2024, 3, 1, 7, 30), 60), VehicleType.MOTORCYCLE
        )

        self.assertEqual(calculation.hourly_rate, Decimal('37.5'))
        self.assertEqual(calculation.vehicle_multiplier, Decimal('0.5'))
        self.assertEqual(calculation.time_multiplier, PricingDefaults.PEAK_MULTIPLIER)
        self.assertEqual(calculation.subtotal, Money('37.50'))

    def test_time_multiplier_boundaries(self):
        """Test peak and night hour boundaries are inclusive"""
        test_cases = [
            (0, Decimal('0.8')),
            (5, Decimal('0.8')),
            (6, Decimal('0.8')),
            (7, Decimal('1.5')),
            (9, Decimal('1.5')),
            (10, Decimal('1.0')),
            (16, Decimal('1.0')),
            (17, Decimal('1.5')),
            (19, Decimal('1.5')),
            (20, Decimal('1.0')),
            (21, Decimal('1.0')),
            (22, Decimal('0.8')),
            (23, Decimal('0.8')),
        ]

        for hour, expected in test_cases:
            start = datetime(2024, 3, 1, hour, 59)
            self.assertEqual(self.strategy.time_multiplier(start), expected, msg=f"Failed for hour {hour}")

    def test_billable_hours(self):
        """Test durations round up to whole hours with a one hour minimum"""
        test_cases = [
            (1, 1),
            (59, 1),
            (60, 1),
            (61, 2),
            (120, 2),
            (150, 3),
            (24 * 60 + 1, 25),
        ]

        start = datetime(2024, 3, 1, 10, 0)
        for minutes, expected in test_cases:
            self.assertEqual(
                HierarchicalPricingStrategy.billable_hours(window(start, minutes)),
                expected,
                msg=f"Failed for {minutes} minutes"
            )

    def test_subtotal_monotonic_in_duration(self):
        """Test a longer booking never costs less"""
        start = datetime(2024, 3, 1, 10, 0)
        previous = Money(0)

        for minutes in range(15, 6 * 60, 15):
            subtotal = resolve_base_amount(self.chain, window(start, minutes), VehicleType.CAR)
            self.assertFalse(subtotal.is_less_than(previous), msg=f"Failed at {minutes} minutes")
            previous = subtotal

    def test_subtotal_rounded_to_cent(self):
        """Test fractional hourly rates round half-up on the subtotal"""
        chain = PricingChain(location=PricingConfig.hourly('33.33'))
        calculation = self.strategy.calculate(
            chain, window(datetime(2024, 3, 1, 7, 0), 60), VehicleType.MOTORCYCLE
        )

        # 33.33 * 0.5 * 1.5 = 24.9975
        self.assertEqual(calculation.hourly_rate, Decimal('24.9975'))
        self.assertEqual(calculation.subtotal.amount, Decimal('25.00'))

    def test_local_timezone_conversion(self):
        """Test aware start times are read in the configured timezone"""
        manila = timezone(timedelta(hours=8))
        strategy = HierarchicalPricingStrategy(local_timezone=manila)

        # 00:30 UTC is 08:30 in UTC+8
        start = datetime(2024, 3, 1, 0, 30, tzinfo=timezone.utc)
        self.assertEqual(strategy.local_hour(start), 8)
        self.assertEqual(strategy.time_multiplier(start), PricingDefaults.PEAK_MULTIPLIER)

        naive = datetime(2024, 3, 1, 0, 30)
        self.assertEqual(strategy.local_hour(naive), 0)

    def test_currency_follows_base_rate(self):
        """Test subtotal is in the base rate's currency"""
        chain = PricingChain(location=PricingConfig.hourly(10, 'USD'))
        fee = self.strategy.calculate_parking_fee(
            chain, window(datetime(2024, 3, 1, 12, 0), 60), VehicleType.CAR
        )
        self.assertEqual(fee, Money(10, 'USD'))

    def test_breakdown(self):
        """Test breakdown exposes every pricing factor"""
        calculation = self.strategy.calculate(
            self.chain, window(datetime(2024, 3, 1, 10, 0), 90), VehicleType.CAR
        )
        breakdown = calculation.get_breakdown()

        self.assertEqual(breakdown["billable_hours"], 2)
        self.assertEqual(breakdown["source_level"], "location")
        self.assertEqual(breakdown["subtotal"], {"amount": "100.00", "currency": "PHP"})

    def test_strategy_name(self):
        """Test strategy naming"""
        self.assertEqual(self.strategy.get_strategy_name(), "HierarchicalPricing")
        self.assertEqual(str(self.strategy), "HierarchicalPricing Strategy")


if __name__ == '__main__':
    unittest.main()
