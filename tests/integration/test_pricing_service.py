#!/usr/bin/env python3
"""
Pricing Service Integration Tests

Exercises the application service end to end: request DTOs in,
booking cost DTOs out, with discount rules loaded from a repository.
"""

import unittest
import sys
from decimal import Decimal
from datetime import timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from parkfare.domain.models import DomainValidationError
from parkfare.domain.discounts import DiscountRule, DiscountEngine, DiscountConfigurationError
from parkfare.application.dtos import BookingCostRequestDTO, BookingCostDTO, DiscountRuleDTO
from parkfare.application.pricing_service import (
    PricingService, PricingServiceFactory, InvalidRequestError,
    DiscountRuleNotFoundError, RuleSourceUnavailableError, DiscountRuleSource
)
from parkfare.infrastructure.repositories import RepositoryFactory, SQLAlchemyDiscountRuleRepository
from parkfare.infrastructure.factories import DiscountRuleFactory


def booking_request(**overrides):
    request = {
        "pricing_chain": {"location": {"amount": "50"}},
        "time_window": {
            "start_time": "2024-03-01T10:00:00",
            "end_time": "2024-03-01T12:30:00"
        },
        "vehicle_type": "car",
        "context": {}
    }
    request.update(overrides)
    return request


class TestQuoteBooking(unittest.TestCase):
    """Integration tests for quoting bookings"""

    def setUp(self):
        """Set up test service"""
        self.service = PricingServiceFactory.create_default_service()

    def test_regular_quote(self):
        """Test a regular customer is charged base plus VAT"""
        result = self.service.quote_booking(booking_request())

        self.assertIsInstance(result, BookingCostDTO)
        self.assertEqual(result.base_amount.amount, Decimal('150.00'))
        self.assertEqual(result.vat_amount.amount, Decimal('18.00'))
        self.assertEqual(result.total_amount.amount, Decimal('168.00'))
        self.assertEqual(result.billable_hours, 3)
        self.assertEqual(result.rate_source, "location")
        self.assertFalse(result.is_vat_exempt)

    def test_senior_quote(self):
        """Test the statutory senior discount applies by default"""
        result = self.service.quote_booking(booking_request(context={"age": 67}))

        self.assertEqual(result.discount_amount.amount, Decimal('30.00'))
        self.assertEqual(result.vat_amount.amount, Decimal('0.00'))
        self.assertEqual(result.total_amount.amount, Decimal('120.00'))
        self.assertTrue(result.is_vat_exempt)
        self.assertEqual([d.name for d in result.discounts], ["Senior Citizen Discount"])

    def test_quote_serialization(self):
        """Test the quote serializes amounts as decimal strings"""
        data = self.service.quote_booking(booking_request(context={"hasPWDId": True})).to_dict()

        self.assertEqual(data["total_amount"], {"amount": "120.00", "currency": "PHP"})
        self.assertEqual(data["discounts"][0]["discount_type"], "pwd")

    def test_typed_request(self):
        """Test a request DTO is accepted as is"""
        request = BookingCostRequestDTO.model_validate(booking_request(vehicle_type="motorcycle"))
        result = self.service.quote_booking(request)

        self.assertEqual(result.hourly_rate, Decimal('25'))
        self.assertEqual(result.base_amount.amount, Decimal('75.00'))

    def test_default_vehicle_type(self):
        """Test requests without a vehicle type price a car"""
        request = booking_request()
        del request["vehicle_type"]
        self.assertEqual(self.service.quote_booking(request).base_amount.amount, Decimal('150.00'))

    def test_spot_override(self):
        """Test request-level overrides are honoured"""
        chain = {"location": {"amount": "50"}, "zone": {"amount": "40"}, "spot": {"amount": "70"}}
        result = self.service.quote_booking(booking_request(pricing_chain=chain))

        self.assertEqual(result.rate_source, "spot")
        self.assertEqual(result.base_amount.amount, Decimal('210.00'))

    def test_invalid_requests(self):
        """Test malformed requests are rejected at the boundary"""
        invalid_requests = [
            {},
            booking_request(pricing_chain={}),
            booking_request(pricing_chain={"location": {"amount": "-1"}}),
            booking_request(pricing_chain={"location": {"amount": "1.005"}}),
            booking_request(time_window={"start_time": "2024-03-01T12:00:00", "end_time": "2024-03-01T10:00:00"}),
            booking_request(vehicle_type="spaceship"),
            booking_request(time_window={"start_time": "2024-03-01T10:00:00", "end_time": "2024-03-01T12:00:00+08:00"}),
        ]

        for request in invalid_requests:
            with self.assertRaises(InvalidRequestError, msg=f"Failed for {request}"):
                self.service.quote_booking(request)

    def test_domain_errors_propagate(self):
        """Test values that pass the boundary but violate domain rules raise domain errors"""
        request = booking_request(pricing_chain={"location": {"amount": "50", "currency": "P1P"}})
        with self.assertRaises(DomainValidationError):
            self.service.quote_booking(request)

    def test_vat_rate_configuration(self):
        """Test configuration changes apply to the next quote"""
        self.service.config["vat_rate"] = Decimal('5')
        result = self.service.quote_booking(booking_request())
        self.assertEqual(result.vat_amount.amount, Decimal('7.50'))

    def test_timezone_configuration(self):
        """Test peak hours are read in the configured timezone"""
        service = PricingServiceFactory.create_service_with_config({"local_timezone": timezone.utc})
        window = {"start_time": "2024-03-01T10:00:00+03:00", "end_time": "2024-03-01T11:00:00+03:00"}

        result = service.quote_booking(booking_request(time_window=window))
        self.assertEqual(result.hourly_rate, Decimal('75'))

    def test_unknown_timezone_configuration(self):
        """Test an unknown timezone name is reported as an invalid request"""
        service = PricingServiceFactory.create_service_with_config({"local_timezone": "Nowhere/Atlantis"})
        with self.assertRaises(InvalidRequestError):
            service.quote_booking(booking_request())

    def test_default_currency_configuration(self):
        """Test rates without a currency are priced in the configured currency"""
        service = PricingServiceFactory.create_service_with_config({"default_currency": "USD"})
        chain = {"location": {"amount": "50"}, "spot": {"amount": "60", "currency": "usd"}}

        result = service.quote_booking(booking_request(pricing_chain={"location": {"amount": "50"}}))
        self.assertEqual(result.total_amount.currency, "USD")
        self.assertEqual(result.total_amount.amount, Decimal("168.00"))

        explicit = self.service.quote_booking(booking_request(pricing_chain=chain))
        self.assertEqual(explicit.total_amount.currency, "USD")
        self.assertEqual(self.service.quote_booking(booking_request()).total_amount.currency, "PHP")


class TestDiscountRuleManagement(unittest.TestCase):
    """Integration tests for managing discount rules through the service"""

    def setUp(self):
        """Set up test service"""
        self.service = PricingService(discount_engine=DiscountEngine())
        self.student_rule = {
            "name": "Student Discount",
            "type": "custom",
            "percentage": "15",
            "conditions": [{"field": "isStudent", "operator": "equals", "value": True}]
        }

    def test_load_rules_from_dicts(self):
        """Test loading replaces the whole registry"""
        self.service.add_discount_rule(DiscountRule.senior_citizen())
        count = self.service.load_discount_rules([self.student_rule, DiscountRule.pwd()])

        self.assertEqual(count, 2)
        names = {r.name for r in self.service.discount_engine.get_rules()}
        self.assertEqual(names, {"Student Discount", "PWD Discount"})

    def test_stacked_quote(self):
        """Test custom and statutory discounts stack and the exemption wins"""
        self.service.load_discount_rules([self.student_rule, DiscountRule.senior_citizen()])
        result = self.service.quote_booking(booking_request(context={"age": 70, "isStudent": True}))

        # 15% + 20% of 150, no VAT
        self.assertEqual(result.discount_amount.amount, Decimal('52.50'))
        self.assertEqual(result.total_amount.amount, Decimal('97.50'))

    def test_add_get_remove(self):
        """Test single rule registration"""
        rule = self.service.add_discount_rule(DiscountRuleDTO.model_validate(self.student_rule))

        self.assertIs(self.service.get_discount_rule(rule.id), rule)
        self.service.remove_discount_rule(rule.id)

        with self.assertRaises(DiscountRuleNotFoundError):
            self.service.remove_discount_rule(rule.id)
        with self.assertRaises(DiscountRuleNotFoundError):
            self.service.get_discount_rule(rule.id)

    def test_strict_operator_configuration(self):
        """Test strict mode rejects rules with unknown operators"""
        odd_rule = dict(self.student_rule, conditions=[{"field": "age", "operator": "between", "value": [1, 2]}])

        self.assertEqual(self.service.load_discount_rules([odd_rule]), 1)

        self.service.config["strict_discount_operators"] = True
        with self.assertRaises(DiscountConfigurationError):
            self.service.load_discount_rules([odd_rule])
        with self.assertRaises(DiscountConfigurationError):
            self.service.add_discount_rule(odd_rule)

    def test_load_without_source(self):
        """Test loading from a source requires one"""
        with self.assertRaises(RuleSourceUnavailableError):
            self.service.load_discount_rules()

    def test_review_rule(self):
        """Test review reports validation problems and conflicts without registering"""
        self.service.add_discount_rule(DiscountRule.senior_citizen())

        review = self.service.review_discount_rule({
            "name": "Senior Citizen Discount",
            "type": "senior",
            "percentage": 10,
            "conditions": [{"field": "age", "operator": "greater_than_or_equal", "value": 60}]
        })

        self.assertTrue(review["is_valid"])
        self.assertIn("senior discounts are typically VAT exempt", review["warnings"])
        self.assertEqual([c["type"] for c in review["conflicts"]], ["duplicate", "duplicate", "overlap"])
        self.assertEqual(len(self.service.discount_engine), 1)

    def test_check_eligibility(self):
        """Test eligibility from a plain mapping"""
        self.assertTrue(self.service.check_eligibility("senior", {"age": 61}).is_eligible)
        self.assertFalse(self.service.check_eligibility("pwd", {"hasPWDId": False}).is_eligible)


class TestRuleSource(unittest.TestCase):
    """Integration tests for loading rules from a repository"""

    def setUp(self):
        """Set up a database with global and operator rules"""
        self.session = RepositoryFactory.create_session_factory()()
        self.repository = SQLAlchemyDiscountRuleRepository(self.session)

        factory = DiscountRuleFactory()
        for rule in factory.suggest_rules("street"):
            self.repository.add(rule)
        self.early_bird = factory.create_early_bird_discount()
        self.repository.add(self.early_bird, operator_id="facility-1")

    def tearDown(self):
        """Clean up"""
        self.session.close()

    def test_repository_is_rule_source(self):
        """Test repositories satisfy the rule source protocol"""
        self.assertIsInstance(self.repository, DiscountRuleSource)

    def test_service_with_rule_source(self):
        """Test operator rules load alongside global rules"""
        service = PricingServiceFactory.create_service_with_rule_source(self.repository, "facility-1")
        self.assertEqual(len(service.discount_engine), 3)

        window = {"start_time": "2024-03-01T10:00:00", "end_time": "2024-03-01T11:00:00"}
        result = service.quote_booking(booking_request(time_window=window, context={"bookingHour": 5}))

        self.assertEqual(result.discount_amount.amount, Decimal('7.50'))
        self.assertEqual(result.total_amount.amount, Decimal('47.60'))

    def test_reload_picks_up_changes(self):
        """Test reloading reflects rules deactivated in the store"""
        service = PricingServiceFactory.create_service_with_rule_source(self.repository, "facility-1")

        self.early_bird.deactivate()
        self.repository.update(self.early_bird)

        self.assertEqual(service.load_discount_rules(operator_id="facility-1"), 2)
        self.assertNotIn(self.early_bird.id, service.discount_engine)


if __name__ == '__main__':
    unittest.main()
