# File: src/parkfare/application/pricing_service.py
"""
Pricing Application Service

This module implements the application service layer of the pricing engine.
It turns booking requests into cost breakdowns and keeps the discount rule
registry in step with the rule store.

Responsibilities:
1. Validate boundary input (DTOs) and convert it to domain objects
2. Run the booking cost calculation with the configured VAT rate and timezone
3. Load, add and remove discount rules
4. Handle cross-cutting concerns (logging, configuration, error handling)

Key Principles:
- Domain errors propagate unchanged after being logged
- Dependency Injection for testability (engine and rule source are injectable)
- Configuration is read on every call, so updates apply immediately
"""

from typing import Dict, List, Optional, Any, Iterable, Union, Protocol, runtime_checkable
from datetime import tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

from pydantic import ValidationError

from ..domain.models import Percentage, DiscountType, DomainValidationError, TimeRange, VehicleType
from ..domain.pricing import PricingDefaults, PricingChain, HierarchicalPricingStrategy
from ..domain.discounts import DiscountEngine, DiscountRule, DiscountUserContext
from ..domain.discount_policies import (
    RuleValidationResult, RuleConflict, EligibilityCheck,
    validate_rule, find_conflicts, check_eligibility
)
from ..domain.tax import VATCalculator
from ..domain.transactions import BookingCost, BookingCostCalculator, default_discount_engine
from .dtos import BookingCostRequestDTO, BookingCostDTO, DiscountRuleDTO


# ============================================================================
# RULE SOURCE INTERFACE
# ============================================================================

@runtime_checkable
class DiscountRuleSource(Protocol):
    """Anything that can list the active discount rules"""

    def find_active(self, operator_id: Optional[str] = None) -> List[DiscountRule]:
        ...


# ============================================================================
# EXCEPTIONS
# ============================================================================

class PricingServiceError(Exception):
    """Base exception for pricing service errors"""
    pass


class DiscountRuleNotFoundError(PricingServiceError):
    """Exception when a discount rule id is not registered"""
    pass


class RuleSourceUnavailableError(PricingServiceError):
    """Exception when rules are requested from a service without a rule source"""
    pass


class InvalidRequestError(PricingServiceError):
    """Exception for malformed booking cost requests"""
    pass


# ============================================================================
# PRICING SERVICE
# ============================================================================

RuleInput = Union[DiscountRule, DiscountRuleDTO, Dict[str, Any]]


class PricingService:
    """
    Application service for booking cost quotes

    Use cases:
    1. Quote a booking (request DTO in, breakdown DTO out)
    2. Refresh discount rules from the rule source
    3. Add, remove and review individual discount rules
    4. Check a customer's eligibility for statutory discounts
    """

    def __init__(
        self,
        discount_engine: Optional[DiscountEngine] = None,
        rule_source: Optional[DiscountRuleSource] = None
    ):
        """
        Initialize the pricing service

        Args:
            discount_engine: Rule registry to use. Defaults to the statutory
                             senior citizen and PWD discounts.
            rule_source: Optional store that ``load_discount_rules`` reads from.
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.discount_engine = discount_engine if discount_engine is not None else default_discount_engine()
        self.rule_source = rule_source

        # Service configuration
        self.config: Dict[str, Any] = {
            "default_currency": PricingDefaults.CURRENCY,
            "vat_rate": PricingDefaults.VAT_RATE,
            "local_timezone": None,   # IANA name, e.g. "Asia/Manila"
            "strict_discount_operators": False
        }

        self.logger.info("PricingService initialized")

    # Configuration

    def _local_timezone(self) -> Optional[tzinfo]:
        value = self.config.get("local_timezone")
        if value is None or isinstance(value, tzinfo):
            return value
        try:
            return ZoneInfo(str(value))
        except (ZoneInfoNotFoundError, ValueError) as e:
            self.logger.error(f"Unknown local timezone {value!r}: {e}")
            raise InvalidRequestError(f"Unknown timezone: {value}") from e

    def _vat_calculator(self) -> VATCalculator:
        return VATCalculator(Percentage(self.config["vat_rate"]))

    def _calculator(self) -> BookingCostCalculator:
        return BookingCostCalculator(
            discount_engine=self.discount_engine,
            vat_calculator=self._vat_calculator(),
            pricing_strategy=HierarchicalPricingStrategy(self._local_timezone())
        )

    # Quotes

    def calculate_booking_cost(
        self,
        pricing_chain: PricingChain,
        time_window: TimeRange,
        vehicle_type: VehicleType,
        context: DiscountUserContext
    ) -> BookingCost:
        """Price a booking from domain objects"""
        try:
            return self._calculator().calculate_booking_cost(pricing_chain, time_window, vehicle_type, context)
        except DomainValidationError as e:
            self.logger.error(f"Booking cost calculation failed: {e}", exc_info=True)
            raise

    def quote_booking(self, request: Union[BookingCostRequestDTO, Dict[str, Any]]) -> BookingCostDTO:
        """
        Price a booking request

        Raises:
            InvalidRequestError: request does not match the boundary contract
            DomainValidationError: request values violate a domain invariant
        """
        if not isinstance(request, BookingCostRequestDTO):
            try:
                request = BookingCostRequestDTO.model_validate(request)
            except ValidationError as e:
                self.logger.error(f"Invalid booking cost request: {e}")
                raise InvalidRequestError(str(e)) from e

        try:
            pricing_chain = request.pricing_chain.to_domain(self.config["default_currency"])
            time_window = request.time_window.to_domain()
            context = request.user_context()
        except DomainValidationError as e:
            self.logger.error(f"Error quoting booking: {e}", exc_info=True)
            raise

        cost = self.calculate_booking_cost(pricing_chain, time_window, request.vehicle(), context)

        self.logger.info(
            f"Quoted {request.vehicle_type} booking: total {cost.total_amount} "
            f"({len(cost.discounts)} discount(s))"
        )
        return BookingCostDTO.from_domain(cost)

    # Discount rules

    @staticmethod
    def _to_rule(rule: RuleInput) -> DiscountRule:
        if isinstance(rule, DiscountRule):
            return rule
        if isinstance(rule, dict):
            rule = DiscountRuleDTO.model_validate(rule)
        return rule.to_domain()

    def load_discount_rules(
        self,
        rules: Optional[Iterable[RuleInput]] = None,
        operator_id: Optional[str] = None
    ) -> int:
        """
        Replace the registry with ``rules``, or with the rule source's active
        rules for ``operator_id`` when no rules are given.

        Returns: number of rules now registered
        """
        if rules is None:
            if self.rule_source is None:
                raise RuleSourceUnavailableError("No discount rule source configured")
            rules = self.rule_source.find_active(operator_id)

        self.discount_engine.strict_conditions = bool(self.config["strict_discount_operators"])
        try:
            self.discount_engine.replace_rules([self._to_rule(rule) for rule in rules])
        except DomainValidationError as e:
            self.logger.error(f"Error loading discount rules: {e}", exc_info=True)
            raise

        self.logger.info(f"Loaded {len(self.discount_engine)} discount rule(s)")
        return len(self.discount_engine)

    def add_discount_rule(self, rule: RuleInput) -> DiscountRule:
        self.discount_engine.strict_conditions = bool(self.config["strict_discount_operators"])
        domain_rule = self._to_rule(rule)
        self.discount_engine.add_rule(domain_rule)
        self.logger.info(f"Added discount rule {domain_rule.id} ({domain_rule.name})")
        return domain_rule

    def remove_discount_rule(self, rule_id: str) -> None:
        if not self.discount_engine.remove_rule(rule_id):
            raise DiscountRuleNotFoundError(f"Discount rule {rule_id} not found")
        self.logger.info(f"Removed discount rule {rule_id}")

    def get_discount_rule(self, rule_id: str) -> DiscountRule:
        rule = self.discount_engine.get_rule(rule_id)
        if rule is None:
            raise DiscountRuleNotFoundError(f"Discount rule {rule_id} not found")
        return rule

    def review_discount_rule(self, rule: RuleInput) -> Dict[str, Any]:
        """Validation result and conflicts with registered rules, without registering"""
        domain_rule = self._to_rule(rule)
        validation: RuleValidationResult = validate_rule(domain_rule)
        conflicts: List[RuleConflict] = find_conflicts(domain_rule, self.discount_engine.get_rules())

        return {
            "is_valid": validation.is_valid,
            "errors": validation.errors,
            "warnings": validation.warnings,
            "conflicts": [
                {
                    "type": conflict.conflict_type.value,
                    "rule_id": conflict.conflicting_rule.id,
                    "rule_name": conflict.conflicting_rule.name,
                    "description": conflict.description
                }
                for conflict in conflicts
            ]
        }

    def check_eligibility(
        self,
        discount_type: Union[DiscountType, str],
        context: Union[DiscountUserContext, Dict[str, Any]]
    ) -> EligibilityCheck:
        if not isinstance(context, DiscountUserContext):
            context = DiscountUserContext.from_mapping(context)
        return check_eligibility(discount_type, context)


# ============================================================================
# SERVICE FACTORY
# ============================================================================

class PricingServiceFactory:
    """Factory for creating pricing service instances"""

    @staticmethod
    def create_default_service() -> PricingService:
        """Create a pricing service with the statutory discounts"""
        return PricingService()

    @staticmethod
    def create_service_with_config(config: Dict[str, Any]) -> PricingService:
        """Create a pricing service with custom configuration"""
        service = PricingService()
        service.config.update(config)
        return service

    @staticmethod
    def create_service_with_rule_source(
        rule_source: DiscountRuleSource,
        operator_id: Optional[str] = None,
        config: Optional[Dict[str, Any]] = None
    ) -> PricingService:
        """Create a pricing service whose registry is loaded from a rule source"""
        service = PricingService(discount_engine=DiscountEngine(), rule_source=rule_source)
        service.config.update(config or {})
        service.load_discount_rules(operator_id=operator_id)
        return service
