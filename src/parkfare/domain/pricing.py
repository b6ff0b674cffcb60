# File: src/parkfare/domain/pricing.py
"""
Pricing Hierarchy and Pricing Strategies

A spot's hourly base rate is looked up through an override chain:
spot -> zone -> section -> location. The nearest level carrying its own
configuration wins; the location must always define a rate.

The effective hourly rate then applies:
- a vehicle type multiplier (motorcycles pay half)
- a time-of-day multiplier read from the booking start's local hour
  (peak 1.5, night 0.8, otherwise 1.0)

Durations are billed in whole hours, rounded up, minimum one hour.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Dict, Any, List, Tuple
from datetime import datetime, timedelta, tzinfo
from decimal import Decimal
from enum import Enum
import logging

from .models import (
    Money, TimeRange, VehicleType, DomainValidationError, Validated, validated
)


class PricingDefaults:
    """Default pricing constants"""
    CURRENCY = "PHP"
    BASE_RATE = Decimal('50')
    VAT_RATE = Decimal('12')

    PEAK_MULTIPLIER = Decimal('1.5')
    NIGHT_MULTIPLIER = Decimal('0.8')
    STANDARD_MULTIPLIER = Decimal('1.0')

    # Whole-hour ranges, both ends inclusive
    PEAK_HOURS: Tuple[Tuple[int, int], ...] = ((7, 9), (17, 19))
    NIGHT_START_HOUR = 22
    NIGHT_END_HOUR = 6


class HierarchyLevel(Enum):
    """Levels of the pricing hierarchy, most specific first"""
    SPOT = "spot"
    ZONE = "zone"
    SECTION = "section"
    LOCATION = "location"

    @classmethod
    def lookup_order(cls) -> List['HierarchyLevel']:
        return [cls.SPOT, cls.ZONE, cls.SECTION, cls.LOCATION]


class PricingSource(Enum):
    """Where a resolved configuration came from"""
    OWN = "own"
    INHERITED = "inherited"


@dataclass(frozen=True)
class PricingConfig:
    """Hourly base rate configured at one hierarchy level"""
    base_rate: Money

    def __post_init__(self):
        if not isinstance(self.base_rate, Money):
            raise DomainValidationError("Pricing base rate must be Money")

    @classmethod
    def create(cls, base_rate: Money) -> Validated['PricingConfig']:
        return validated(cls, base_rate)

    @classmethod
    def hourly(cls, amount, currency: str = PricingDefaults.CURRENCY) -> 'PricingConfig':
        return cls(Money(amount, currency))


@dataclass(frozen=True)
class PricingResolution:
    """Result of walking the override chain"""
    config: PricingConfig
    source_level: HierarchyLevel
    source: PricingSource

    @property
    def is_inherited(self) -> bool:
        return self.source == PricingSource.INHERITED


@dataclass(frozen=True)
class PricingChain:
    """
    Override chain for a single spot. Every level but the location is
    optional. ``target_level`` is the level the chain was built for; a
    configuration found there is "own", anything above it is inherited.
    """
    location: PricingConfig
    section: Optional[PricingConfig] = None
    zone: Optional[PricingConfig] = None
    spot: Optional[PricingConfig] = None
    target_level: HierarchyLevel = HierarchyLevel.SPOT

    def __post_init__(self):
        if not isinstance(self.location, PricingConfig):
            raise DomainValidationError("Location must define a base rate")

        for level in (HierarchyLevel.SECTION, HierarchyLevel.ZONE, HierarchyLevel.SPOT):
            config = self.config_at(level)
            if config is not None and not isinstance(config, PricingConfig):
                raise DomainValidationError(f"{level.value.title()} config must be a PricingConfig")

    @classmethod
    def create(cls, location: Optional[PricingConfig], section: Optional[PricingConfig] = None,
               zone: Optional[PricingConfig] = None, spot: Optional[PricingConfig] = None,
               target_level: HierarchyLevel = HierarchyLevel.SPOT) -> Validated['PricingChain']:
        return validated(cls, location, section, zone, spot, target_level)

    def config_at(self, level: HierarchyLevel) -> Optional[PricingConfig]:
        return getattr(self, level.value)

    def resolve(self) -> PricingResolution:
        """Nearest non-empty configuration, spot first"""
        for level in HierarchyLevel.lookup_order():
            config = self.config_at(level)
            if config is not None:
                source = PricingSource.OWN if level == self.target_level else PricingSource.INHERITED
                return PricingResolution(config, level, source)

        # Unreachable while the location config is mandatory
        raise DomainValidationError("Location must define a base rate")

    @property
    def effective_config(self) -> PricingConfig:
        return self.resolve().config


@dataclass(frozen=True)
class PricingCalculation:
    """
    Outcome of pricing a booking window.
    ``hourly_rate`` is kept exact; only ``subtotal`` is rounded to the cent.
    """
    base_rate: Money
    source_level: HierarchyLevel
    vehicle_multiplier: Decimal
    time_multiplier: Decimal
    hourly_rate: Decimal
    billable_hours: int
    subtotal: Money

    def get_breakdown(self) -> Dict[str, Any]:
        return {
            "base_rate": self.base_rate.to_dict(),
            "source_level": self.source_level.value,
            "vehicle_multiplier": str(self.vehicle_multiplier),
            "time_multiplier": str(self.time_multiplier),
            "hourly_rate": str(self.hourly_rate),
            "billable_hours": self.billable_hours,
            "subtotal": self.subtotal.to_dict()
        }


# ============================================================================
# STRATEGY INTERFACES
# ============================================================================

class PricingStrategy(ABC):
    """
    Abstract base class for pricing strategies
    Defines the interface for fee calculation algorithms
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def calculate(
        self,
        pricing_chain: PricingChain,
        time_range: TimeRange,
        vehicle_type: VehicleType
    ) -> PricingCalculation:
        """
        Price a booking window
        Returns: Full pricing calculation
        """
        pass

    def calculate_parking_fee(
        self,
        pricing_chain: PricingChain,
        time_range: TimeRange,
        vehicle_type: VehicleType
    ) -> Money:
        """Calculate the parking fee, rounded to the cent"""
        return self.calculate(pricing_chain, time_range, vehicle_type).subtotal

    def get_strategy_name(self) -> str:
        """Get human-readable strategy name"""
        return self.__class__.__name__.replace("Strategy", "")

    def __str__(self) -> str:
        return f"{self.get_strategy_name()} Strategy"


# ============================================================================
# CONCRETE PRICING STRATEGIES
# ============================================================================

class HierarchicalPricingStrategy(PricingStrategy):
    """
    Hierarchical pricing strategy
    - Base rate from the nearest level of the override chain
    - Vehicle type multipliers
    - Peak / night multipliers on the start hour
    - Whole-hour billing, rounded up
    """

    def __init__(self, local_timezone: Optional[tzinfo] = None):
        super().__init__()
        self.local_timezone = local_timezone

    def vehicle_multiplier(self, vehicle_type: VehicleType) -> Decimal:
        return vehicle_type.get_parking_rate_multiplier()

    def local_hour(self, moment: datetime) -> int:
        """Hour of day in the configured timezone; naive datetimes are taken as local"""
        if self.local_timezone is not None and moment.tzinfo is not None:
            moment = moment.astimezone(self.local_timezone)
        return moment.hour

    def time_multiplier(self, start_time: datetime) -> Decimal:
        hour = self.local_hour(start_time)

        for first, last in PricingDefaults.PEAK_HOURS:
            if first <= hour <= last:
                return PricingDefaults.PEAK_MULTIPLIER

        if hour >= PricingDefaults.NIGHT_START_HOUR or hour <= PricingDefaults.NIGHT_END_HOUR:
            return PricingDefaults.NIGHT_MULTIPLIER

        return PricingDefaults.STANDARD_MULTIPLIER

    @staticmethod
    def billable_hours(time_range: TimeRange) -> int:
        """Duration rounded up to whole hours, at least one"""
        hours = -(-time_range.duration // timedelta(hours=1))
        return max(1, hours)

    def calculate(
        self,
        pricing_chain: PricingChain,
        time_range: TimeRange,
        vehicle_type: VehicleType
    ) -> PricingCalculation:
        resolution = pricing_chain.resolve()
        base_rate = resolution.config.base_rate

        vehicle_multiplier = self.vehicle_multiplier(vehicle_type)
        time_multiplier = self.time_multiplier(time_range.start_time)
        hourly_rate = base_rate.amount * vehicle_multiplier * time_multiplier
        hours = self.billable_hours(time_range)

        self.logger.debug(
            f"Pricing {vehicle_type.value} for {hours}h at {hourly_rate}/h "
            f"(base {base_rate} from {resolution.source_level.value})"
        )

        return PricingCalculation(
            base_rate=base_rate,
            source_level=resolution.source_level,
            vehicle_multiplier=vehicle_multiplier,
            time_multiplier=time_multiplier,
            hourly_rate=hourly_rate,
            billable_hours=hours,
            subtotal=Money.from_unrounded(hourly_rate * hours, base_rate.currency)
        )


def resolve_base_amount(
    pricing_chain: PricingChain,
    time_window: TimeRange,
    vehicle_type: VehicleType,
    strategy: Optional[PricingStrategy] = None
) -> Money:
    """Base amount for a booking window, before discounts and VAT"""
    strategy = strategy or HierarchicalPricingStrategy()
    return strategy.calculate_parking_fee(pricing_chain, time_window, vehicle_type)
