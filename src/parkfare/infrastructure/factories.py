# File: src/parkfare/infrastructure/factories.py
"""
Factory Pattern Implementation for the Pricing Engine

This module implements factories for creating discount objects:
1. Discount Rule Factory - rules from DTOs, dictionaries and standard presets
2. Discount Engine Factory - engines preloaded from presets or a repository

Standard presets:
- Senior citizen and PWD discounts (statutory, always suggested)
- First-time guest, early bird and student discounts (context-specific)
"""

from abc import ABC, abstractmethod
from typing import TypeVar, Generic, Optional, Dict, List, Any, Iterable, Union
from decimal import Decimal
from enum import Enum
import logging

from ..domain.models import DiscountType
from ..domain.discounts import DiscountRule, DiscountCondition, DiscountOperator, DiscountEngine
from ..application.dtos import DiscountRuleDTO
from .repositories import DiscountRuleRepository

T = TypeVar('T')


class OperatorType(Enum):
    """Kinds of parking operators"""
    STREET = "street"
    FACILITY = "facility"
    HOSTED = "hosted"


# ============================================================================
# FACTORY INTERFACES
# ============================================================================

class Factory(ABC, Generic[T]):
    """Base factory interface"""

    @abstractmethod
    def create(self, **kwargs) -> T:
        """Create an instance of T"""
        pass

    @abstractmethod
    def create_many(self, items: Iterable[Dict[str, Any]]) -> List[T]:
        """Create multiple instances"""
        pass


# ============================================================================
# DOMAIN OBJECT FACTORIES
# ============================================================================

class DiscountRuleFactory(Factory[DiscountRule]):
    """Factory for creating DiscountRule domain objects"""

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    def create(
        self,
        name: str,
        discount_type: Union[DiscountType, str] = DiscountType.CUSTOM,
        percentage: Union[Decimal, int, str] = Decimal('0'),
        is_vat_exempt: bool = False,
        conditions: Optional[Iterable[Union[DiscountCondition, Dict[str, Any]]]] = None,
        is_active: bool = True,
        description: Optional[str] = None
    ) -> DiscountRule:
        """
        Create a DiscountRule

        Args:
            name: Display name of the rule
            discount_type: senior, pwd or custom (string or enum)
            percentage: Discount percentage, 0 to 100
            is_vat_exempt: Whether applying the rule waives VAT
            conditions: Conditions as objects or {"field", "operator", "value"} dicts
            is_active: Initial state
            description: Optional free text
        """
        built_conditions = [
            condition if isinstance(condition, DiscountCondition)
            else DiscountCondition(condition["field"], condition["operator"], condition.get("value"))
            for condition in (conditions or [])
        ]

        rule = DiscountRule(
            name=name,
            discount_type=discount_type,
            percentage=percentage,
            is_vat_exempt=is_vat_exempt,
            conditions=built_conditions,
            is_active=is_active,
            description=description
        )
        self.logger.debug(f"Created discount rule {rule.id} ({rule.name})")
        return rule

    def create_many(self, items: Iterable[Dict[str, Any]]) -> List[DiscountRule]:
        """Create rules from dictionaries"""
        return [self.create_from_dict(item) for item in items]

    def create_from_dto(self, dto: DiscountRuleDTO) -> DiscountRule:
        """Create rule from DTO"""
        return dto.to_domain()

    def create_from_dict(self, data: Dict[str, Any]) -> DiscountRule:
        """Create rule from a dictionary in the DTO shape"""
        return self.create_from_dto(DiscountRuleDTO.model_validate(data))

    def create_senior_citizen_discount(self) -> DiscountRule:
        """20% VAT-exempt discount for customers aged 60 and above"""
        return DiscountRule.senior_citizen()

    def create_pwd_discount(self) -> DiscountRule:
        """20% VAT-exempt discount for customers holding a PWD ID"""
        return DiscountRule.pwd()

    def create_first_time_guest_discount(self) -> DiscountRule:
        return self.create(
            name="First-Time Guest Discount",
            percentage=Decimal('10'),
            conditions=[DiscountCondition("totalBookings", DiscountOperator.EQUALS, 0)],
            description="Welcome discount for first-time guests"
        )

    def create_early_bird_discount(self) -> DiscountRule:
        return self.create(
            name="Early Bird Discount",
            percentage=Decimal('15'),
            conditions=[DiscountCondition("bookingHour", DiscountOperator.LESS_THAN, 6)],
            description="Discount for bookings made before 6 AM"
        )

    def create_student_discount(self) -> DiscountRule:
        return self.create(
            name="Student Discount",
            percentage=Decimal('15'),
            conditions=[DiscountCondition("isStudent", DiscountOperator.EQUALS, True)],
            description="Discount for verified students"
        )

    def suggest_rules(
        self,
        operator_type: Union[OperatorType, str],
        target_customers: Iterable[str] = ()
    ) -> List[DiscountRule]:
        """
        Standard rules for an operator: the statutory discounts always, plus
        presets that suit the operator type and target customers
        """
        operator_type = OperatorType(operator_type)
        suggestions = [self.create_senior_citizen_discount(), self.create_pwd_discount()]

        if operator_type == OperatorType.HOSTED:
            suggestions.append(self.create_first_time_guest_discount())

        if operator_type == OperatorType.FACILITY:
            suggestions.append(self.create_early_bird_discount())

        if "students" in set(target_customers):
            suggestions.append(self.create_student_discount())

        return suggestions


class DiscountEngineFactory:
    """Factory for creating DiscountEngine instances"""

    @staticmethod
    def create_statutory_engine(strict_conditions: bool = False) -> DiscountEngine:
        """Engine with the senior citizen and PWD discounts"""
        factory = DiscountRuleFactory()
        return DiscountEngine(
            [factory.create_senior_citizen_discount(), factory.create_pwd_discount()],
            strict_conditions=strict_conditions
        )

    @staticmethod
    def create_from_repository(
        repository: DiscountRuleRepository,
        operator_id: Optional[str] = None,
        strict_conditions: bool = False
    ) -> DiscountEngine:
        """Engine holding the repository's active rules for an operator"""
        return DiscountEngine(repository.find_active(operator_id), strict_conditions=strict_conditions)
