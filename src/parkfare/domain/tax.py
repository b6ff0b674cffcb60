# File: src/parkfare/domain/tax.py
"""
VAT calculation with discount-driven exemptions.

Exemption is all-or-nothing: a single VAT-exempt applied discount makes the
whole calculation exempt, whatever else was applied.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any, Sequence, Tuple, TYPE_CHECKING
from decimal import Decimal
import logging

from .models import Money, Percentage, DomainValidationError, round_to_cent

if TYPE_CHECKING:
    from .discounts import AppliedDiscount


@dataclass(frozen=True)
class VATCalculation:
    """Value Object: VAT computed on a net amount"""
    net_amount: Money
    vat_amount: Money
    total_amount: Money
    vat_rate: Percentage
    is_exempt: bool
    exemption_reasons: Tuple['AppliedDiscount', ...] = field(default_factory=tuple)

    def __post_init__(self):
        object.__setattr__(self, 'exemption_reasons', tuple(self.exemption_reasons))

        if self.net_amount.add(self.vat_amount) != self.total_amount:
            raise DomainValidationError(
                f"VAT total {self.total_amount} must equal net {self.net_amount} plus VAT {self.vat_amount}"
            )

        if self.is_exempt and not (self.vat_amount.is_zero() and self.vat_rate.value == 0):
            raise DomainValidationError("Exempt VAT calculation must have zero rate and zero VAT")

    def get_breakdown(self) -> Dict[str, Any]:
        return {
            "net_amount": self.net_amount.to_dict(),
            "vat_rate": str(self.vat_rate.value),
            "vat_amount": self.vat_amount.to_dict(),
            "total_amount": self.total_amount.to_dict(),
            "is_exempt": self.is_exempt,
            "exemption_reasons": [
                {"type": reason.discount_type.value, "name": reason.name}
                for reason in self.exemption_reasons
            ]
        }


class VATCalculator:
    """
    Computes VAT at a fixed default rate (12%).
    """

    DEFAULT_RATE = Percentage(Decimal('12'))

    def __init__(self, default_rate: Optional[Percentage] = None):
        self.default_rate = default_rate if default_rate is not None else self.DEFAULT_RATE
        if not isinstance(self.default_rate, Percentage):
            raise DomainValidationError("VAT rate must be a Percentage")
        self.logger = logging.getLogger(self.__class__.__name__)

    @staticmethod
    def _exempting(applied_discounts: Sequence['AppliedDiscount']) -> List['AppliedDiscount']:
        return [discount for discount in applied_discounts if discount.is_vat_exempt]

    def _exempt(self, amount: Money, exempting: List['AppliedDiscount']) -> VATCalculation:
        self.logger.debug(f"VAT exempt via {', '.join(d.name for d in exempting)}")
        return VATCalculation(
            net_amount=amount,
            vat_amount=Money.zero(amount.currency),
            total_amount=amount,
            vat_rate=Percentage(Decimal('0')),
            is_exempt=True,
            exemption_reasons=tuple(exempting)
        )

    def _taxed(self, net: Money, rate: Percentage) -> VATCalculation:
        vat = Money(round_to_cent(rate.apply(net.amount)), net.currency)
        return VATCalculation(
            net_amount=net,
            vat_amount=vat,
            total_amount=net.add(vat),
            vat_rate=rate,
            is_exempt=False
        )

    def calculate(self, amount: Money, applied_discounts: Sequence['AppliedDiscount'] = ()) -> VATCalculation:
        """
        VAT on ``amount`` less the applied discounts.
        Exempt calculations report the undiscounted amount as net and total.
        """
        return self.calculate_with_custom_rate(amount, self.default_rate, applied_discounts)

    def calculate_with_custom_rate(
        self,
        amount: Money,
        vat_rate: Percentage,
        applied_discounts: Sequence['AppliedDiscount'] = ()
    ) -> VATCalculation:
        exempting = self._exempting(applied_discounts)
        if exempting:
            return self._exempt(amount, exempting)

        total_discount = Money.total((d.amount for d in applied_discounts), amount.currency)
        if total_discount.is_greater_than(amount):
            net = Money.zero(amount.currency)
        else:
            net = amount.subtract(total_discount)

        return self._taxed(net, vat_rate)

    def calculate_net(
        self,
        net_amount: Money,
        applied_discounts: Sequence['AppliedDiscount'] = (),
        vat_rate: Optional[Percentage] = None
    ) -> VATCalculation:
        """VAT on an amount that already has its discounts taken off"""
        exempting = self._exempting(applied_discounts)
        if exempting:
            return self._exempt(net_amount, exempting)
        return self._taxed(net_amount, vat_rate if vat_rate is not None else self.default_rate)
