# File: src/parkfare/domain/discount_policies.py
"""
Discount policies used when operators configure discount rules:
rule and condition validation, eligibility checks for the statutory
discounts, conflict detection between rules and a rough impact estimate.

None of these affect pricing directly; the engine evaluates whatever rules
it is given.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Iterable, Union
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from .models import Money, Percentage, DiscountType, to_decimal, round_to_cent
from .discounts import (
    DiscountRule, DiscountCondition, DiscountUserContext,
    ContextField, MISSING, is_number
)
from .tax import VATCalculator


SENIOR_CITIZEN_AGE = 60
STATUTORY_PERCENTAGE = Decimal('20')
ASSUMED_ADOPTION_RATE = Decimal('0.7')


@dataclass(frozen=True)
class RuleValidationResult:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class EligibilityCheck:
    is_eligible: bool
    reason: Optional[str] = None
    required_documents: List[str] = field(default_factory=list)
    missing_conditions: List[str] = field(default_factory=list)


class ConflictType(Enum):
    DUPLICATE = "duplicate"
    OVERLAP = "overlap"


@dataclass(frozen=True)
class RuleConflict:
    conflict_type: ConflictType
    conflicting_rule: DiscountRule
    description: str


@dataclass(frozen=True)
class DiscountImpact:
    estimated_monthly_usage: int
    estimated_monthly_discount: Money
    vat_impact: Money

    @property
    def estimated_revenue_impact(self) -> Money:
        return self.estimated_monthly_discount.add(self.vat_impact)


# ============================================================================
# VALIDATION
# ============================================================================

def validate_condition(condition: DiscountCondition) -> RuleValidationResult:
    """Check a condition is complete and its value suits its operator"""
    errors: List[str] = []

    if not condition.field.strip():
        errors.append("Condition field is required")

    if not condition.operator_name:
        errors.append("Condition operator is required")
    elif not condition.is_known_operator:
        errors.append(f"Unknown condition operator: {condition.operator_name}")

    if condition.value is None:
        errors.append("Condition value is required")
    elif condition.is_known_operator:
        if condition.operator.is_ordering and not is_number(condition.value):
            errors.append(f"Operator {condition.operator.value} requires a numeric value")
        if condition.operator.is_containment and not isinstance(condition.value, str):
            errors.append(f"Operator {condition.operator.value} requires a string value")

    return RuleValidationResult(errors=errors)


def _reads(rule: DiscountRule, context_field: ContextField) -> bool:
    return any(ContextField.lookup(c.field) == context_field for c in rule.conditions)


def validate_rule(rule: DiscountRule) -> RuleValidationResult:
    """
    Errors make a rule unusable; warnings flag statutory discounts set up
    unlike the law describes them.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not rule.name.strip():
        errors.append("Discount rule name is required")

    if rule.discount_type.is_statutory:
        label = rule.discount_type.value
        if not rule.is_vat_exempt:
            warnings.append(f"{label} discounts are typically VAT exempt")
        if rule.percentage.value != STATUTORY_PERCENTAGE:
            warnings.append(f"{label} discounts are typically {STATUTORY_PERCENTAGE}%")

    for condition in rule.conditions:
        errors.extend(validate_condition(condition).errors)

    if rule.discount_type == DiscountType.SENIOR and not _reads(rule, ContextField.AGE):
        warnings.append(f"Senior citizen discount should include an age condition (typically >= {SENIOR_CITIZEN_AGE})")

    if rule.discount_type == DiscountType.PWD and not _reads(rule, ContextField.HAS_PWD_ID):
        warnings.append("PWD discount should include a PWD ID verification condition")

    return RuleValidationResult(errors=errors, warnings=warnings)


# ============================================================================
# ELIGIBILITY
# ============================================================================

def _check_senior(context: DiscountUserContext) -> EligibilityCheck:
    missing: List[str] = []
    documents: List[str] = []

    age = context.resolve(ContextField.AGE.value)
    if age is MISSING or not is_number(age) or age < SENIOR_CITIZEN_AGE:
        missing.append(f"Must be {SENIOR_CITIZEN_AGE} years old or above")

    if not context.has_senior_id:
        documents.append("Senior Citizen ID or Birth Certificate")

    eligible = not missing
    return EligibilityCheck(
        is_eligible=eligible,
        reason=None if eligible else "Does not meet senior citizen requirements",
        required_documents=documents,
        missing_conditions=missing
    )


def _check_pwd(context: DiscountUserContext) -> EligibilityCheck:
    if context.has_pwd_id is True:
        return EligibilityCheck(is_eligible=True)

    return EligibilityCheck(
        is_eligible=False,
        reason="Does not meet PWD requirements",
        required_documents=["PWD ID or Medical Certificate"],
        missing_conditions=["Must have a valid PWD ID"]
    )


def check_eligibility(discount_type: Union[DiscountType, str], context: DiscountUserContext) -> EligibilityCheck:
    try:
        discount_type = DiscountType(discount_type)
    except ValueError:
        return EligibilityCheck(is_eligible=False, reason="Unknown discount type")

    if discount_type == DiscountType.SENIOR:
        return _check_senior(context)
    if discount_type == DiscountType.PWD:
        return _check_pwd(context)

    # Custom discounts are open to everyone; their conditions decide
    return EligibilityCheck(is_eligible=True)


# ============================================================================
# CONFLICTS AND IMPACT
# ============================================================================

def _conditions_overlap(first: DiscountRule, second: DiscountRule) -> bool:
    return any(a.matches(b) for a in first.conditions for b in second.conditions)


def find_conflicts(new_rule: DiscountRule, existing_rules: Iterable[DiscountRule]) -> List[RuleConflict]:
    """Conflicts between ``new_rule`` and the rules already configured"""
    conflicts: List[RuleConflict] = []

    for existing in existing_rules:
        if existing.id == new_rule.id:
            continue

        if existing.name.strip().lower() == new_rule.name.strip().lower():
            conflicts.append(RuleConflict(
                ConflictType.DUPLICATE, existing, "A discount rule with this name already exists"
            ))

        if existing.discount_type == new_rule.discount_type and new_rule.discount_type.is_statutory:
            conflicts.append(RuleConflict(
                ConflictType.DUPLICATE, existing,
                f"Only one {new_rule.discount_type.value} discount rule should exist"
            ))

        if _conditions_overlap(new_rule, existing):
            conflicts.append(RuleConflict(
                ConflictType.OVERLAP, existing, "This rule has overlapping conditions with an existing rule"
            ))

    return conflicts


def estimate_impact(
    rule: DiscountRule,
    average_amount: Money,
    monthly_transactions: int,
    eligible_percentage: Union[Percentage, Decimal, int, float, str]
) -> DiscountImpact:
    """Monthly discount cost of a rule, assuming 70% of eligible customers use it"""
    if not isinstance(eligible_percentage, Percentage):
        eligible_percentage = Percentage(eligible_percentage)

    eligible = eligible_percentage.apply(to_decimal(monthly_transactions, "Monthly transactions"))
    usage = int((eligible * ASSUMED_ADOPTION_RATE).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    per_transaction = rule.percentage.apply(average_amount.amount)
    monthly_discount = Money(round_to_cent(per_transaction * usage), average_amount.currency)

    if rule.is_vat_exempt:
        vat_impact = monthly_discount.multiply(VATCalculator.DEFAULT_RATE.as_fraction())
    else:
        vat_impact = Money.zero(average_amount.currency)

    return DiscountImpact(
        estimated_monthly_usage=usage,
        estimated_monthly_discount=monthly_discount,
        vat_impact=vat_impact
    )
