# File: src/parkfare/application/dtos.py
"""
Data Transfer Objects (DTOs) for the Pricing Engine

This module defines the JSON-shaped boundary of the engine:
1. Input DTOs - booking cost requests, pricing chains, discount rules
2. Output DTOs - booking cost breakdowns and applied discounts

DTO Principles:
- Validation at creation (pydantic)
- No business logic, only data and conversion to/from domain objects
- Monetary amounts travel as decimal strings
"""

from typing import Dict, List, Optional, Any
from datetime import datetime
from decimal import Decimal
from enum import Enum
import json

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from ..domain.models import Money, TimeRange, VehicleType, DiscountType, DEFAULT_CURRENCY
from ..domain.pricing import PricingChain, PricingConfig
from ..domain.discounts import (
    AppliedDiscount, DiscountCondition, DiscountRule, DiscountUserContext
)
from ..domain.transactions import BookingCost


# ============================================================================
# BASE DTO CLASSES
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        use_enum_values=True
    )

    def to_dict(self, exclude_none: bool = False, **kwargs) -> Dict[str, Any]:
        """Convert DTO to a JSON-compatible dictionary"""
        return self.model_dump(mode="json", exclude_none=exclude_none, **kwargs)

    def to_json(self, **kwargs) -> str:
        """Convert DTO to JSON string"""
        return self.model_dump_json(**kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Create DTO from dictionary"""
        return cls.model_validate(data)

    @classmethod
    def from_json(cls, json_str: str):
        """Create DTO from JSON string"""
        return cls.model_validate(json.loads(json_str))


# ============================================================================
# ENUM DTOs
# ============================================================================

class VehicleTypeDTO(str, Enum):
    """Vehicle type DTO"""
    CAR = "car"
    MOTORCYCLE = "motorcycle"
    TRUCK = "truck"
    VAN = "van"
    BUS = "bus"
    SUV = "suv"


class DiscountTypeDTO(str, Enum):
    """Discount type DTO"""
    SENIOR = "senior"
    PWD = "pwd"
    CUSTOM = "custom"


# ============================================================================
# VALUE OBJECT DTOs
# ============================================================================

class MoneyDTO(BaseDTO):
    """Money value object DTO"""
    amount: Decimal = Field(ge=0, description="Amount")
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3,
                                    description="Currency code (ISO 4217), the configured default when omitted")

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        """Validate amount precision"""
        if v != 0 and v.normalize().as_tuple().exponent < -2:
            raise ValueError("Amount cannot have more than 2 decimal places")
        return v

    def to_domain(self, default_currency: str = DEFAULT_CURRENCY) -> Money:
        return Money(self.amount, self.currency or default_currency)

    @classmethod
    def from_domain(cls, money: Money) -> 'MoneyDTO':
        return cls(amount=money.amount, currency=money.currency)


class TimeRangeDTO(BaseDTO):
    """Time range DTO"""
    start_time: datetime = Field(description="Start time")
    end_time: datetime = Field(description="End time")

    @model_validator(mode='after')
    def validate_end_time(self) -> 'TimeRangeDTO':
        """Validate that end time is after start time"""
        if (self.start_time.tzinfo is None) != (self.end_time.tzinfo is None):
            raise ValueError("Start and end times must both be naive or both be timezone-aware")
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self

    @property
    def duration_hours(self) -> float:
        """Calculate duration in hours"""
        return (self.end_time - self.start_time).total_seconds() / 3600

    def to_domain(self) -> TimeRange:
        return TimeRange(self.start_time, self.end_time)


class PricingChainDTO(BaseDTO):
    """Hourly base rates along the spot -> zone -> section -> location chain"""
    location: MoneyDTO = Field(description="Location base rate (required)")
    section: Optional[MoneyDTO] = Field(default=None, description="Section override")
    zone: Optional[MoneyDTO] = Field(default=None, description="Zone override")
    spot: Optional[MoneyDTO] = Field(default=None, description="Spot override")

    def to_domain(self, default_currency: str = DEFAULT_CURRENCY) -> PricingChain:
        def config(rate: Optional[MoneyDTO]) -> Optional[PricingConfig]:
            return PricingConfig(rate.to_domain(default_currency)) if rate is not None else None

        return PricingChain(
            location=config(self.location),
            section=config(self.section),
            zone=config(self.zone),
            spot=config(self.spot)
        )


# ============================================================================
# DISCOUNT DTOs
# ============================================================================

class DiscountConditionDTO(BaseDTO):
    """Discount condition DTO; unknown operators are accepted and never match"""
    id: Optional[str] = None
    field: str = Field(min_length=1, description="Context field, dotted for nested extras")
    operator: str = Field(min_length=1, description="Comparison operator")
    value: Any = None

    def to_domain(self) -> DiscountCondition:
        return DiscountCondition.create(self.field, self.operator, self.value, self.id).unwrap()

    @classmethod
    def from_domain(cls, condition: DiscountCondition) -> 'DiscountConditionDTO':
        return cls(id=condition.id, field=condition.field,
                   operator=condition.operator_name, value=condition.value)


class DiscountRuleDTO(BaseDTO):
    """Discount rule DTO"""
    id: Optional[str] = None
    name: str = Field(min_length=1, max_length=100, description="Rule name")
    discount_type: DiscountTypeDTO = Field(alias="type", description="Discount category")
    percentage: Decimal = Field(ge=0, le=100, description="Discount percentage")
    is_vat_exempt: bool = False
    conditions: List[DiscountConditionDTO] = Field(default_factory=list)
    is_active: bool = True
    description: Optional[str] = None
    operator_id: Optional[str] = Field(default=None, description="Owning operator, None for global rules")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Discount rule name is required")
        return v

    def to_domain(self) -> DiscountRule:
        return DiscountRule(
            name=self.name,
            discount_type=DiscountType(self.discount_type),
            percentage=self.percentage,
            is_vat_exempt=self.is_vat_exempt,
            conditions=[c.to_domain() for c in self.conditions],
            is_active=self.is_active,
            description=self.description,
            id=self.id
        )

    @classmethod
    def from_domain(cls, rule: DiscountRule, operator_id: Optional[str] = None) -> 'DiscountRuleDTO':
        return cls(
            id=rule.id,
            name=rule.name,
            discount_type=rule.discount_type.value,
            percentage=rule.percentage.value,
            is_vat_exempt=rule.is_vat_exempt,
            conditions=[DiscountConditionDTO.from_domain(c) for c in rule.conditions],
            is_active=rule.is_active,
            description=rule.description,
            operator_id=operator_id
        )


class AppliedDiscountDTO(BaseDTO):
    """Applied discount DTO"""
    id: str
    rule_id: str
    discount_type: DiscountTypeDTO = Field(alias="type")
    name: str
    percentage: Decimal
    amount: MoneyDTO
    is_vat_exempt: bool
    applied_at: datetime

    @classmethod
    def from_domain(cls, discount: AppliedDiscount) -> 'AppliedDiscountDTO':
        return cls(
            id=discount.id,
            rule_id=discount.rule_id,
            discount_type=discount.discount_type.value,
            name=discount.name,
            percentage=discount.percentage.value,
            amount=MoneyDTO.from_domain(discount.amount),
            is_vat_exempt=discount.is_vat_exempt,
            applied_at=discount.applied_at
        )


# ============================================================================
# BOOKING COST DTOs
# ============================================================================

class BookingCostRequestDTO(BaseDTO):
    """Request to price a booking"""
    pricing_chain: PricingChainDTO
    time_window: TimeRangeDTO
    vehicle_type: VehicleTypeDTO = Field(default=VehicleTypeDTO.CAR, validate_default=True)
    context: Dict[str, Any] = Field(default_factory=dict, description="User attributes for discount evaluation")

    def user_context(self) -> DiscountUserContext:
        return DiscountUserContext.from_mapping(self.context)

    def vehicle(self) -> VehicleType:
        return VehicleType(self.vehicle_type)


class BookingCostDTO(BaseDTO):
    """Booking cost breakdown"""
    base_amount: MoneyDTO
    discount_amount: MoneyDTO
    vat_amount: MoneyDTO
    total_amount: MoneyDTO
    discounts: List[AppliedDiscountDTO] = Field(default_factory=list)
    is_vat_exempt: bool = False
    hourly_rate: Optional[Decimal] = None
    billable_hours: Optional[int] = None
    rate_source: Optional[str] = None

    @classmethod
    def from_domain(cls, cost: BookingCost) -> 'BookingCostDTO':
        pricing = cost.pricing
        return cls(
            base_amount=MoneyDTO.from_domain(cost.base_amount),
            discount_amount=MoneyDTO.from_domain(cost.discount_amount),
            vat_amount=MoneyDTO.from_domain(cost.vat_amount),
            total_amount=MoneyDTO.from_domain(cost.total_amount),
            discounts=[AppliedDiscountDTO.from_domain(d) for d in cost.discounts],
            is_vat_exempt=cost.is_vat_exempt,
            hourly_rate=pricing.hourly_rate if pricing else None,
            billable_hours=pricing.billable_hours if pricing else None,
            rate_source=pricing.source_level.value if pricing else None
        )
