# File: src/parkfare/domain/discounts.py
"""
Discount Rule Engine

Discount rules carry a percentage, a VAT exemption flag and a conjunction of
conditions evaluated against a ``DiscountUserContext``.

Condition evaluation fails closed: a missing context field or an unknown
operator makes that condition false instead of raising. Engines built with
``strict_conditions=True`` reject rules with unknown operators at
registration instead.

Stacking is flat: every applicable discount is computed against the same
original amount, never against a previously discounted remainder.
"""

from dataclasses import dataclass, field as dataclass_field
from types import MappingProxyType
from typing import Optional, List, Dict, Any, Iterable, Mapping, Union, Callable, TYPE_CHECKING
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
import logging
import uuid

from .models import (
    Entity, Money, Percentage, DiscountType, DomainValidationError,
    Validated, validated
)

if TYPE_CHECKING:
    from .tax import VATCalculator
    from .transactions import TransactionCalculation


class DiscountConfigurationError(DomainValidationError):
    """Raised when a discount rule is configured in a way the engine refuses"""
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# CONTEXT FIELDS
# ============================================================================

class ContextField(Enum):
    """
    Closed set of user context attributes a condition can read directly.
    Anything else is looked up in ``DiscountUserContext.extras``.
    """
    USER_ID = "user_id"
    AGE = "age"
    HAS_PWD_ID = "has_pwd_id"
    HAS_SENIOR_ID = "has_senior_id"
    USER_TYPE = "user_type"
    MEMBERSHIP_LEVEL = "membership_level"
    TOTAL_BOOKINGS = "total_bookings"
    IS_STUDENT = "is_student"
    BOOKING_HOUR = "booking_hour"

    @classmethod
    def lookup(cls, name: str) -> Optional['ContextField']:
        """Find a field by its snake_case or camelCase name"""
        return _FIELD_ALIASES.get(name)

    def read(self, context: 'DiscountUserContext') -> Any:
        return _FIELD_ACCESSORS[self](context)

    @property
    def camel_name(self) -> str:
        return _CAMEL_NAMES[self]


_CAMEL_NAMES = {
    ContextField.USER_ID: "userId",
    ContextField.AGE: "age",
    ContextField.HAS_PWD_ID: "hasPWDId",
    ContextField.HAS_SENIOR_ID: "hasSeniorId",
    ContextField.USER_TYPE: "userType",
    ContextField.MEMBERSHIP_LEVEL: "membershipLevel",
    ContextField.TOTAL_BOOKINGS: "totalBookings",
    ContextField.IS_STUDENT: "isStudent",
    ContextField.BOOKING_HOUR: "bookingHour",
}

_FIELD_ALIASES: Dict[str, ContextField] = {}
for _field in ContextField:
    _FIELD_ALIASES[_field.value] = _field
    _FIELD_ALIASES[_CAMEL_NAMES[_field]] = _field

_FIELD_ACCESSORS: Dict[ContextField, Callable[['DiscountUserContext'], Any]] = {
    ContextField.USER_ID: lambda context: context.user_id,
    ContextField.AGE: lambda context: context.age,
    ContextField.HAS_PWD_ID: lambda context: context.has_pwd_id,
    ContextField.HAS_SENIOR_ID: lambda context: context.has_senior_id,
    ContextField.USER_TYPE: lambda context: context.user_type,
    ContextField.MEMBERSHIP_LEVEL: lambda context: context.membership_level,
    ContextField.TOTAL_BOOKINGS: lambda context: context.total_bookings,
    ContextField.IS_STUDENT: lambda context: context.is_student,
    ContextField.BOOKING_HOUR: lambda context: context.booking_hour,
}


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


@dataclass(frozen=True)
class DiscountUserContext:
    """
    Read-only description of the customer a discount is evaluated for.
    Unknown attributes go to ``extras``, which may be nested.
    """
    user_id: Optional[str] = None
    age: Optional[int] = None
    has_pwd_id: Optional[bool] = None
    has_senior_id: Optional[bool] = None
    user_type: Optional[str] = None
    membership_level: Optional[str] = None
    total_bookings: Optional[int] = None
    is_student: Optional[bool] = None
    booking_hour: Optional[int] = None
    extras: Mapping[str, Any] = dataclass_field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.extras, Mapping):
            raise DomainValidationError("Context extras must be a mapping")
        object.__setattr__(self, 'extras', MappingProxyType(dict(self.extras)))

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> 'DiscountUserContext':
        """Build a context from a free-form attribute mapping (camelCase or snake_case keys)"""
        known: Dict[str, Any] = {}
        extras: Dict[str, Any] = {}

        for key, value in (data or {}).items():
            if key == "extras" and isinstance(value, Mapping):
                extras.update(value)
                continue
            context_field = ContextField.lookup(key)
            if context_field is not None:
                known[context_field.value] = value
            else:
                extras[key] = value

        return cls(extras=extras, **known)

    def resolve(self, path: str) -> Any:
        """
        Value named by ``path`` or ``MISSING``.
        Known fields are read through their accessor; other names walk
        ``extras`` one dotted segment at a time. ``None`` counts as missing.
        """
        context_field = ContextField.lookup(path)
        if context_field is not None:
            value = context_field.read(self)
            return MISSING if value is None else value

        node: Any = self.extras
        for segment in path.split('.'):
            if not isinstance(node, Mapping) or segment not in node:
                return MISSING
            node = node[segment]

        return MISSING if node is None else node

    def to_dict(self) -> Dict[str, Any]:
        data = {f.value: f.read(self) for f in ContextField if f.read(self) is not None}
        if self.extras:
            data["extras"] = dict(self.extras)
        return data


# ============================================================================
# CONDITIONS
# ============================================================================

class DiscountOperator(Enum):
    """Comparison operators a condition may use"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"

    @property
    def is_ordering(self) -> bool:
        return self in (
            DiscountOperator.GREATER_THAN, DiscountOperator.GREATER_THAN_OR_EQUAL,
            DiscountOperator.LESS_THAN, DiscountOperator.LESS_THAN_OR_EQUAL
        )

    @property
    def is_containment(self) -> bool:
        return self in (DiscountOperator.CONTAINS, DiscountOperator.NOT_CONTAINS)


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _strict_equals(left: Any, right: Any) -> bool:
    # True == 1 in Python; a flag never equals a count here
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    return left == right


def _compare(operator: DiscountOperator, actual: Any, expected: Any) -> bool:
    if operator == DiscountOperator.EQUALS:
        return _strict_equals(actual, expected)
    if operator == DiscountOperator.NOT_EQUALS:
        return not _strict_equals(actual, expected)

    if operator.is_ordering:
        if not (is_number(actual) and is_number(expected)):
            return False
        if operator == DiscountOperator.GREATER_THAN:
            return actual > expected
        if operator == DiscountOperator.GREATER_THAN_OR_EQUAL:
            return actual >= expected
        if operator == DiscountOperator.LESS_THAN:
            return actual < expected
        return actual <= expected

    if not (isinstance(actual, str) and isinstance(expected, str)):
        return False
    found = expected.lower() in actual.lower()
    return found if operator == DiscountOperator.CONTAINS else not found


@dataclass(frozen=True)
class DiscountCondition:
    """
    Value Object: single predicate over the user context.
    An operator outside ``DiscountOperator`` is kept as its raw string and
    never matches.
    """
    field: str
    operator: Union[DiscountOperator, str]
    value: Any
    id: str = dataclass_field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not isinstance(self.field, str):
            raise DomainValidationError("Condition field must be a string")

        if isinstance(self.operator, str):
            try:
                object.__setattr__(self, 'operator', DiscountOperator(self.operator))
            except ValueError:
                pass
        elif not isinstance(self.operator, DiscountOperator):
            raise DomainValidationError(f"Invalid condition operator: {self.operator!r}")

    @classmethod
    def create(cls, field: str, operator: Union[DiscountOperator, str], value: Any,
               id: Optional[str] = None) -> Validated['DiscountCondition']:
        if id is None:
            return validated(cls, field, operator, value)
        return validated(cls, field, operator, value, id)

    @property
    def is_known_operator(self) -> bool:
        return isinstance(self.operator, DiscountOperator)

    @property
    def operator_name(self) -> str:
        return self.operator.value if self.is_known_operator else self.operator

    def evaluate(self, context: DiscountUserContext) -> bool:
        if not self.is_known_operator:
            logging.getLogger("DiscountCondition").warning(
                f"Unknown operator '{self.operator}' on condition {self.id}; treating as false"
            )
            return False

        actual = context.resolve(self.field)
        if actual is MISSING:
            return False

        return _compare(self.operator, actual, self.value)

    def matches(self, other: 'DiscountCondition') -> bool:
        """Same predicate, ignoring the id"""
        return (self.field == other.field and
                self.operator_name == other.operator_name and
                _strict_equals(self.value, other.value))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "field": self.field,
            "operator": self.operator_name,
            "value": self.value
        }


# ============================================================================
# APPLIED DISCOUNTS
# ============================================================================

@dataclass(frozen=True)
class AppliedDiscount:
    """Immutable snapshot of one rule's effect on one amount"""
    rule_id: str
    discount_type: DiscountType
    name: str
    percentage: Percentage
    amount: Money
    is_vat_exempt: bool
    applied_at: datetime = dataclass_field(default_factory=_utcnow)
    id: str = ""

    def __post_init__(self):
        if not isinstance(self.amount, Money):
            raise DomainValidationError("Applied discount amount must be Money")
        if not self.id:
            object.__setattr__(self, 'id', f"{self.rule_id}-{int(self.applied_at.timestamp() * 1000)}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "type": self.discount_type.value,
            "name": self.name,
            "percentage": str(self.percentage.value),
            "amount": self.amount.to_dict(),
            "is_vat_exempt": self.is_vat_exempt,
            "applied_at": self.applied_at.isoformat()
        }


# ============================================================================
# DISCOUNT RULES
# ============================================================================

def _as_percentage(value: Union[Percentage, Decimal, int, float, str]) -> Percentage:
    return value if isinstance(value, Percentage) else Percentage(value)


def _as_discount_type(value: Union[DiscountType, str]) -> DiscountType:
    if isinstance(value, DiscountType):
        return value
    try:
        return DiscountType(value)
    except ValueError:
        raise DomainValidationError(f"Unknown discount type: {value!r}") from None


class DiscountRule(Entity):
    """
    Entity: a configured discount.
    States are active / inactive; every other change goes through the
    update methods, which also bump ``updated_at``.
    """

    def __init__(
        self,
        name: str,
        discount_type: Union[DiscountType, str],
        percentage: Union[Percentage, Decimal, int, float, str],
        is_vat_exempt: bool = False,
        conditions: Optional[Iterable[DiscountCondition]] = None,
        is_active: bool = True,
        description: Optional[str] = None,
        id: Optional[str] = None,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None
    ):
        super().__init__(id)
        if not isinstance(name, str):
            raise DomainValidationError("Discount rule name must be a string")

        self._name = name
        self._discount_type = _as_discount_type(discount_type)
        self._percentage = _as_percentage(percentage)
        self._is_vat_exempt = bool(is_vat_exempt)
        self._conditions: List[DiscountCondition] = list(conditions or [])
        self._is_active = bool(is_active)
        self.description = description
        self._created_at = created_at or _utcnow()
        self._updated_at = updated_at or self._created_at

        for condition in self._conditions:
            if not isinstance(condition, DiscountCondition):
                raise DomainValidationError("Discount rule conditions must be DiscountCondition instances")

    @classmethod
    def create(cls, name: str, discount_type: Union[DiscountType, str], percentage,
               is_vat_exempt: bool = False, conditions: Optional[Iterable[DiscountCondition]] = None,
               **kwargs) -> Validated['DiscountRule']:
        return validated(cls, name, discount_type, percentage, is_vat_exempt, conditions, **kwargs)

    @classmethod
    def senior_citizen(cls, id: Optional[str] = None) -> 'DiscountRule':
        """Statutory senior citizen discount: 20%, VAT exempt, age 60 and up"""
        return cls(
            name="Senior Citizen Discount",
            discount_type=DiscountType.SENIOR,
            percentage=Percentage(Decimal('20')),
            is_vat_exempt=True,
            conditions=[DiscountCondition("age", DiscountOperator.GREATER_THAN_OR_EQUAL, 60)],
            description="20% discount for senior citizens aged 60 and above, VAT exempt",
            id=id
        )

    @classmethod
    def pwd(cls, id: Optional[str] = None) -> 'DiscountRule':
        """Statutory PWD discount: 20%, VAT exempt, valid PWD ID"""
        return cls(
            name="PWD Discount",
            discount_type=DiscountType.PWD,
            percentage=Percentage(Decimal('20')),
            is_vat_exempt=True,
            conditions=[DiscountCondition("hasPWDId", DiscountOperator.EQUALS, True)],
            description="20% discount for persons with disability, VAT exempt",
            id=id
        )

    # Read-only state

    @property
    def name(self) -> str:
        return self._name

    @property
    def discount_type(self) -> DiscountType:
        return self._discount_type

    @property
    def percentage(self) -> Percentage:
        return self._percentage

    @property
    def is_vat_exempt(self) -> bool:
        return self._is_vat_exempt

    @property
    def conditions(self) -> tuple:
        return tuple(self._conditions)

    @property
    def is_active(self) -> bool:
        return self._is_active

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def updated_at(self) -> datetime:
        return self._updated_at

    # Evaluation

    def can_apply_to(self, context: DiscountUserContext) -> bool:
        """Active and every condition holds"""
        if not self._is_active:
            return False
        return all(condition.evaluate(context) for condition in self._conditions)

    def calculate_discount(self, amount: Money) -> Money:
        """Discount on ``amount``, rounded half-up to the cent"""
        return amount.multiply(self._percentage.as_fraction())

    def apply_to(self, amount: Money) -> AppliedDiscount:
        return AppliedDiscount(
            rule_id=self.id,
            discount_type=self._discount_type,
            name=self._name,
            percentage=self._percentage,
            amount=self.calculate_discount(amount),
            is_vat_exempt=self._is_vat_exempt
        )

    # State changes

    def _touch(self) -> None:
        self._updated_at = _utcnow()

    def activate(self) -> None:
        self._is_active = True
        self._touch()

    def deactivate(self) -> None:
        self._is_active = False
        self._touch()

    def update_percentage(self, percentage: Union[Percentage, Decimal, int, float, str]) -> None:
        self._percentage = _as_percentage(percentage)
        self._touch()

    def update_vat_exemption(self, is_vat_exempt: bool) -> None:
        self._is_vat_exempt = bool(is_vat_exempt)
        self._touch()

    def add_condition(self, condition: DiscountCondition) -> None:
        if not isinstance(condition, DiscountCondition):
            raise DomainValidationError("Condition must be a DiscountCondition")
        self._conditions.append(condition)
        self._touch()

    def remove_condition(self, condition_id: str) -> bool:
        """Remove a condition by id; False when no such condition exists"""
        remaining = [c for c in self._conditions if c.id != condition_id]
        if len(remaining) == len(self._conditions):
            return False
        self._conditions = remaining
        self._touch()
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self._name,
            "type": self._discount_type.value,
            "percentage": str(self._percentage.value),
            "is_vat_exempt": self._is_vat_exempt,
            "conditions": [c.to_dict() for c in self._conditions],
            "is_active": self._is_active,
            "description": self.description,
            "created_at": self._created_at.isoformat(),
            "updated_at": self._updated_at.isoformat()
        }

    def __str__(self) -> str:
        state = "active" if self._is_active else "inactive"
        return f"{self._name} ({self._percentage}, {state})"


# ============================================================================
# DISCOUNT ENGINE
# ============================================================================

class DiscountEngine:
    """
    Registry of discount rules keyed by id, in insertion order.

    ``add_rule`` / ``remove_rule`` mutate the registry in place and assume a
    single writer. ``replace_rules`` builds a complete new registry and
    publishes it with one reference assignment, so concurrent readers see
    either the old or the new rule set.
    """

    def __init__(self, rules: Optional[Iterable[DiscountRule]] = None, strict_conditions: bool = False):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.strict_conditions = strict_conditions
        self._rules: Dict[str, DiscountRule] = {}

        if rules is not None:
            self.replace_rules(rules)

    def _check_rule(self, rule: DiscountRule) -> None:
        if not isinstance(rule, DiscountRule):
            raise DomainValidationError("Only DiscountRule instances can be registered")

        if self.strict_conditions:
            unknown = [c.operator_name for c in rule.conditions if not c.is_known_operator]
            if unknown:
                raise DiscountConfigurationError(
                    f"Rule '{rule.name}' uses unknown operator(s): {', '.join(unknown)}"
                )

    # Registry

    def add_rule(self, rule: DiscountRule) -> None:
        """Register a rule; a rule with the same id is replaced in place"""
        self._check_rule(rule)
        self._rules[rule.id] = rule
        self.logger.debug(f"Registered discount rule {rule.id} ({rule.name})")

    def remove_rule(self, rule_id: str) -> bool:
        removed = self._rules.pop(rule_id, None)
        if removed is not None:
            self.logger.debug(f"Removed discount rule {rule_id}")
        return removed is not None

    def replace_rules(self, rules: Iterable[DiscountRule]) -> None:
        """Publish a new rule set in a single swap"""
        registry: Dict[str, DiscountRule] = {}
        for rule in rules:
            self._check_rule(rule)
            registry[rule.id] = rule

        self._rules = registry
        self.logger.info(f"Discount registry replaced with {len(registry)} rule(s)")

    def snapshot(self) -> Mapping[str, DiscountRule]:
        """Read-only copy of the current registry"""
        return MappingProxyType(dict(self._rules))

    def get_rule(self, rule_id: str) -> Optional[DiscountRule]:
        return self._rules.get(rule_id)

    def get_rules(self) -> List[DiscountRule]:
        return list(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._rules

    # Evaluation

    def get_applicable_discounts(self, context: DiscountUserContext) -> List[DiscountRule]:
        """Active rules whose conditions all hold, in registry order"""
        rules = self._rules
        applicable = [rule for rule in list(rules.values()) if rule.can_apply_to(context)]
        self.logger.debug(f"{len(applicable)} of {len(rules)} discount rule(s) applicable")
        return applicable

    def apply_best_discount(self, amount: Money, context: DiscountUserContext) -> Optional[AppliedDiscount]:
        """
        The single applicable rule worth the most on ``amount``.
        Ties keep the earlier rule; None when nothing applies.
        """
        best_rule: Optional[DiscountRule] = None
        best_value: Optional[Decimal] = None

        for rule in self.get_applicable_discounts(context):
            value = rule.percentage.apply(amount.amount)
            if best_value is None or value > best_value:
                best_rule, best_value = rule, value

        if best_rule is None:
            return None
        return best_rule.apply_to(amount)

    def apply_all_applicable_discounts(self, amount: Money, context: DiscountUserContext) -> List[AppliedDiscount]:
        """One applied discount per applicable rule, each against the original amount"""
        return [rule.apply_to(amount) for rule in self.get_applicable_discounts(context)]

    def calculate_total_with_discounts_and_vat(
        self,
        amount: Money,
        context: DiscountUserContext,
        vat_calculator: Optional['VATCalculator'] = None
    ) -> 'TransactionCalculation':
        from .tax import VATCalculator
        from .transactions import TransactionCalculation

        vat_calculator = vat_calculator or VATCalculator()
        applied = self.apply_all_applicable_discounts(amount, context)
        vat_calculation = vat_calculator.calculate(amount, applied)

        return TransactionCalculation(
            original_amount=amount,
            applied_discounts=applied,
            vat_calculation=vat_calculation,
            final_amount=vat_calculation.total_amount
        )
