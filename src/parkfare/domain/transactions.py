# File: src/parkfare/domain/transactions.py
"""
Transaction Calculator

Composition root of the pricing engine: resolves the base amount for a
booking, applies discounts from the discount engine and computes VAT on
what is left, producing one auditable cost breakdown.

Flow:
    PricingChain + TimeRange + VehicleType -> base amount
    base amount + DiscountUserContext       -> applied discounts (flat)
    base - min(sum of discounts, base)      -> net amount
    net amount + exemptions                 -> VAT, total
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Tuple
import logging

from .models import Money, TimeRange, VehicleType, DomainValidationError
from .pricing import PricingChain, PricingCalculation, PricingStrategy, HierarchicalPricingStrategy
from .discounts import AppliedDiscount, DiscountEngine, DiscountRule, DiscountUserContext
from .tax import VATCalculation, VATCalculator


@dataclass(frozen=True)
class TransactionCalculation:
    """
    Value Object: discounts and VAT applied to an original amount.
    ``final_amount`` is always the VAT calculation's total.
    """
    original_amount: Money
    applied_discounts: Tuple[AppliedDiscount, ...]
    vat_calculation: VATCalculation
    final_amount: Money

    def __post_init__(self):
        object.__setattr__(self, 'applied_discounts', tuple(self.applied_discounts))
        if self.final_amount != self.vat_calculation.total_amount:
            raise DomainValidationError(
                f"Final amount {self.final_amount} must equal VAT total {self.vat_calculation.total_amount}"
            )

    def get_total_discount_amount(self) -> Money:
        return Money.total((d.amount for d in self.applied_discounts), self.original_amount.currency)

    def get_savings_amount(self) -> Money:
        """How much less than the original amount is paid, never negative"""
        if self.original_amount.is_greater_than(self.final_amount):
            return self.original_amount.subtract(self.final_amount)
        return Money.zero(self.original_amount.currency)

    def get_breakdown(self) -> Dict[str, Any]:
        return {
            "original_amount": self.original_amount.to_dict(),
            "discounts": [
                {
                    "type": d.discount_type.value,
                    "name": d.name,
                    "percentage": str(d.percentage.value),
                    "amount": d.amount.to_dict()
                }
                for d in self.applied_discounts
            ],
            "total_discount": self.get_total_discount_amount().to_dict(),
            "vat": self.vat_calculation.get_breakdown(),
            "final_amount": self.final_amount.to_dict(),
            "savings": self.get_savings_amount().to_dict()
        }


@dataclass(frozen=True)
class BookingCost:
    """Cost breakdown of a single booking"""
    base_amount: Money
    discount_amount: Money
    vat_amount: Money
    total_amount: Money
    discounts: Tuple[AppliedDiscount, ...] = field(default_factory=tuple)
    pricing: Optional[PricingCalculation] = None
    transaction: Optional[TransactionCalculation] = None

    def __post_init__(self):
        object.__setattr__(self, 'discounts', tuple(self.discounts))

        if self.discount_amount.is_greater_than(self.base_amount):
            raise DomainValidationError("Discount amount cannot exceed the base amount")

        expected = self.base_amount.subtract(self.discount_amount).add(self.vat_amount)
        if expected != self.total_amount:
            raise DomainValidationError(
                f"Total {self.total_amount} must equal base less discount plus VAT ({expected})"
            )

    @property
    def net_amount(self) -> Money:
        return self.base_amount.subtract(self.discount_amount)

    @property
    def is_vat_exempt(self) -> bool:
        return any(d.is_vat_exempt for d in self.discounts)

    def get_breakdown(self) -> Dict[str, Any]:
        breakdown = {
            "base_amount": self.base_amount.to_dict(),
            "discount_amount": self.discount_amount.to_dict(),
            "net_amount": self.net_amount.to_dict(),
            "vat_amount": self.vat_amount.to_dict(),
            "total_amount": self.total_amount.to_dict(),
            "discounts": [d.to_dict() for d in self.discounts]
        }
        if self.pricing is not None:
            breakdown["pricing"] = self.pricing.get_breakdown()
        return breakdown


def default_discount_engine() -> DiscountEngine:
    """Engine holding the statutory senior citizen and PWD discounts"""
    return DiscountEngine([DiscountRule.senior_citizen(), DiscountRule.pwd()])


class BookingCostCalculator:
    """
    Prices bookings by chaining the pricing strategy, the discount engine
    and the VAT calculator.
    """

    def __init__(
        self,
        discount_engine: Optional[DiscountEngine] = None,
        vat_calculator: Optional[VATCalculator] = None,
        pricing_strategy: Optional[PricingStrategy] = None
    ):
        self.discount_engine = discount_engine if discount_engine is not None else default_discount_engine()
        self.vat_calculator = vat_calculator or VATCalculator()
        self.pricing_strategy = pricing_strategy or HierarchicalPricingStrategy()
        self.logger = logging.getLogger(self.__class__.__name__)

    def calculate_booking_cost(
        self,
        pricing_chain: PricingChain,
        time_window: TimeRange,
        vehicle_type: VehicleType,
        context: DiscountUserContext
    ) -> BookingCost:
        pricing = self.pricing_strategy.calculate(pricing_chain, time_window, vehicle_type)
        base_amount = pricing.subtotal

        discounts: List[AppliedDiscount] = self.discount_engine.apply_all_applicable_discounts(base_amount, context)
        discount_amount = Money.total((d.amount for d in discounts), base_amount.currency).min(base_amount)
        net_amount = base_amount.subtract(discount_amount)

        vat_calculation = self.vat_calculator.calculate_net(net_amount, discounts)
        transaction = TransactionCalculation(
            original_amount=base_amount,
            applied_discounts=discounts,
            vat_calculation=vat_calculation,
            final_amount=vat_calculation.total_amount
        )

        self.logger.debug(
            f"Booking cost: base {base_amount}, discount {discount_amount}, "
            f"VAT {vat_calculation.vat_amount}, total {vat_calculation.total_amount}"
        )

        return BookingCost(
            base_amount=base_amount,
            discount_amount=discount_amount,
            vat_amount=vat_calculation.vat_amount,
            total_amount=vat_calculation.total_amount,
            discounts=discounts,
            pricing=pricing,
            transaction=transaction
        )


def calculate_booking_cost(
    pricing_chain: PricingChain,
    time_window: TimeRange,
    vehicle_type: VehicleType,
    context: DiscountUserContext,
    discount_engine: Optional[DiscountEngine] = None,
    vat_calculator: Optional[VATCalculator] = None
) -> BookingCost:
    """
    Single entry point of the booking flow.
    Without an engine, the statutory senior citizen and PWD discounts apply.
    """
    calculator = BookingCostCalculator(discount_engine, vat_calculator)
    return calculator.calculate_booking_cost(pricing_chain, time_window, vehicle_type, context)
