# File: src/parkfare/domain/models.py
"""
Domain Models for the Parking Pricing Engine
Following Domain-Driven Design (DDD) principles with rich domain models

This module contains:
1. Value Objects: Immutable, self-validating primitives (Money, Percentage,
   TimeRange, Coordinates, Address, identifiers)
2. Entities: Base class for objects with identity
3. Enums: Type enumerations for domain concepts

Value objects validate eagerly in ``__post_init__`` and raise
``DomainValidationError``. Each of them also offers a ``create`` smart
constructor returning a ``Validated`` result instead of raising.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any, Iterable, Generic, TypeVar, Callable, Union
from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
import math
import re
import uuid


T = TypeVar('T')

CENT = Decimal('0.01')
DEFAULT_CURRENCY = "PHP"

Numeric = Union[Decimal, int, float, str]


# ============================================================================
# ERRORS AND VALIDATION RESULTS
# ============================================================================

class DomainValidationError(ValueError):
    """Raised when a domain value or operation violates an invariant"""
    pass


@dataclass(frozen=True)
class Validated(Generic[T]):
    """
    Outcome of a smart constructor: either a value or an error message.
    Exactly one of ``value`` / ``error`` is set.
    """
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def is_valid(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the validation error"""
        if self.error is not None:
            raise DomainValidationError(self.error)
        return self.value

    def value_or(self, default: T) -> T:
        return self.value if self.error is None else default


def validated(factory: Callable[..., T], *args, **kwargs) -> Validated[T]:
    """Run a raising constructor and capture its validation failure"""
    try:
        return Validated(value=factory(*args, **kwargs))
    except DomainValidationError as e:
        return Validated(error=str(e))


def to_decimal(value: Any, what: str = "Value") -> Decimal:
    """Convert a numeric input to Decimal, rejecting non-numeric and non-finite input"""
    if isinstance(value, bool):
        raise DomainValidationError(f"{what} must be a valid number, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise DomainValidationError(f"{what} must be a valid number, got {value!r}") from None
    else:
        raise DomainValidationError(f"{what} must be a valid number, got {value!r}")

    if not result.is_finite():
        raise DomainValidationError(f"{what} must be a finite number, got {value!r}")
    return result


def round_to_cent(value: Decimal) -> Decimal:
    """Round half-up to two decimal places"""
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise DomainValidationError(f"Amount is too large to represent in cents: {value}") from None


# ============================================================================
# DOMAIN PRIMITIVES / VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)  # Value objects are immutable
class Money:
    """
    Value Object: Monetary amount with currency
    Provides arithmetic operations with validation
    """
    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self):
        """Validate money amount"""
        amount = to_decimal(self.amount, "Money amount")

        if amount < Decimal('0'):
            raise DomainValidationError("Money amount cannot be negative")

        # At most 2 decimal places; trailing zeros don't count
        if amount != 0 and amount.normalize().as_tuple().exponent < -2:
            raise DomainValidationError(f"Money amount cannot have more than 2 decimal places: {amount}")

        if not isinstance(self.currency, str) or not re.match(r'^[A-Za-z]{3}$', self.currency):
            raise DomainValidationError(f"Currency must be 3-letter code: {self.currency}")

        object.__setattr__(self, 'amount', round_to_cent(amount))
        object.__setattr__(self, 'currency', self.currency.upper())

    @classmethod
    def create(cls, amount: Numeric, currency: str = DEFAULT_CURRENCY) -> Validated['Money']:
        return validated(cls, amount, currency)

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> 'Money':
        return cls(Decimal('0'), currency)

    @classmethod
    def from_unrounded(cls, amount: Numeric, currency: str = DEFAULT_CURRENCY) -> 'Money':
        """Build Money from a computed amount, rounding half-up to the cent"""
        return cls(round_to_cent(to_decimal(amount, "Money amount")), currency)

    @classmethod
    def total(cls, amounts: Iterable['Money'], currency: str = DEFAULT_CURRENCY) -> 'Money':
        """Sum money amounts; an empty iterable gives zero in ``currency``"""
        result = cls.zero(currency)
        for amount in amounts:
            result = result.add(amount)
        return result

    def _check_currency(self, other: 'Money', action: str) -> None:
        if not isinstance(other, Money):
            raise DomainValidationError(f"Cannot {action} {type(other).__name__} and Money")
        if self.currency != other.currency:
            raise DomainValidationError(f"Cannot {action} money with different currencies: "
                                        f"{self.currency} and {other.currency}")

    def add(self, other: 'Money') -> 'Money':
        """Add two money amounts (same currency only)"""
        self._check_currency(other, "add")
        return Money(self.amount + other.amount, self.currency)

    def subtract(self, other: 'Money') -> 'Money':
        """Subtract money amounts (same currency only)"""
        self._check_currency(other, "subtract")
        result = self.amount - other.amount
        if result < Decimal('0'):
            raise DomainValidationError("Cannot subtract to negative amount")
        return Money(result, self.currency)

    def multiply(self, factor: Numeric) -> 'Money':
        """Multiply money by a factor, rounding half-up to the cent"""
        factor = to_decimal(factor, "Multiplier")
        if factor < Decimal('0'):
            raise DomainValidationError("Cannot multiply by negative factor")
        return Money(round_to_cent(self.amount * factor), self.currency)

    def divide(self, divisor: Numeric) -> 'Money':
        """Divide money by a positive divisor, rounding half-up to the cent"""
        divisor = to_decimal(divisor, "Divisor")
        if divisor <= Decimal('0'):
            raise DomainValidationError("Cannot divide by zero or negative number")
        return Money(round_to_cent(self.amount / divisor), self.currency)

    def is_zero(self) -> bool:
        return self.amount == Decimal('0')

    def is_greater_than(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount > other.amount

    def is_less_than(self, other: 'Money') -> bool:
        self._check_currency(other, "compare")
        return self.amount < other.amount

    def min(self, other: 'Money') -> 'Money':
        return other if self.is_greater_than(other) else self

    __add__ = add
    __sub__ = subtract
    __mul__ = multiply

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "amount": str(self.amount),
            "currency": self.currency
        }

    def __str__(self) -> str:
        return f"{self.amount} {self.currency}"


@dataclass(frozen=True)
class Percentage:
    """
    Value Object: Percentage between 0 and 100 inclusive
    """
    value: Decimal

    def __post_init__(self):
        value = to_decimal(self.value, "Percentage")
        if value < Decimal('0') or value > Decimal('100'):
            raise DomainValidationError(f"Percentage must be between 0 and 100: {value}")
        object.__setattr__(self, 'value', value)

    @classmethod
    def create(cls, value: Numeric) -> Validated['Percentage']:
        return validated(cls, value)

    def as_fraction(self) -> Decimal:
        """Percentage as a fraction (20% -> 0.2)"""
        return self.value / Decimal('100')

    def apply(self, amount: Numeric) -> Decimal:
        """Return ``amount * value / 100`` without rounding"""
        return to_decimal(amount, "Amount") * self.as_fraction()

    def __str__(self) -> str:
        return f"{self.value.normalize():f}%"


@dataclass(frozen=True)
class TimeRange:
    """
    Value Object: Time range with start and end times
    Provides duration calculation and validation
    """
    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        """Validate time range"""
        if not isinstance(self.start_time, datetime) or not isinstance(self.end_time, datetime):
            raise DomainValidationError("Start and end must be valid datetimes")

        try:
            degenerate = self.end_time <= self.start_time
        except TypeError:
            raise DomainValidationError("Start and end must both be naive or both be timezone-aware") from None

        if degenerate:
            raise DomainValidationError("Start time must be before end time")

    @classmethod
    def create(cls, start_time: datetime, end_time: datetime) -> Validated['TimeRange']:
        return validated(cls, start_time, end_time)

    @property
    def duration(self) -> timedelta:
        """Calculate duration of time range"""
        return self.end_time - self.start_time

    @property
    def duration_minutes(self) -> float:
        """Get duration in minutes"""
        return self.duration.total_seconds() / 60

    @property
    def duration_hours(self) -> float:
        """Get duration in hours"""
        return self.duration.total_seconds() / 3600

    def contains(self, moment: datetime) -> bool:
        return self.start_time <= moment <= self.end_time

    def overlaps(self, other: 'TimeRange') -> bool:
        """Check if this time range overlaps with another"""
        return (self.start_time < other.end_time and
                self.end_time > other.start_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat()
        }

    def __str__(self) -> str:
        start_str = self.start_time.strftime("%Y-%m-%d %H:%M")
        end_str = self.end_time.strftime("%Y-%m-%d %H:%M")
        return f"{start_str} to {end_str} ({self.duration_hours:.1f} hours)"


@dataclass(frozen=True)
class Coordinates:
    """
    Value Object: Geographic coordinate in decimal degrees
    """
    latitude: float
    longitude: float

    EARTH_RADIUS_KM = 6371.0

    def __post_init__(self):
        for name in ("latitude", "longitude"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
                raise DomainValidationError("Latitude and longitude must be numbers")
            if isinstance(value, float) and not math.isfinite(value):
                raise DomainValidationError(f"{name.title()} must be finite")

        if not -90 <= self.latitude <= 90:
            raise DomainValidationError(f"Latitude must be between -90 and 90: {self.latitude}")

        if not -180 <= self.longitude <= 180:
            raise DomainValidationError(f"Longitude must be between -180 and 180: {self.longitude}")

    @classmethod
    def create(cls, latitude: float, longitude: float) -> Validated['Coordinates']:
        return validated(cls, latitude, longitude)

    def distance_to(self, other: 'Coordinates') -> float:
        """Great-circle distance in kilometres (haversine)"""
        lat1, lat2 = math.radians(float(self.latitude)), math.radians(float(other.latitude))
        d_lat = lat2 - lat1
        d_lon = math.radians(float(other.longitude) - float(self.longitude))

        a = (math.sin(d_lat / 2) ** 2 +
             math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2)
        return self.EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    def to_dict(self) -> Dict[str, Any]:
        return {"latitude": self.latitude, "longitude": self.longitude}

    def __str__(self) -> str:
        return f"{self.latitude}, {self.longitude}"


@dataclass(frozen=True)
class Address:
    """
    Value Object: Postal address; every part is required
    """
    street: str
    city: str
    state: str
    zip_code: str
    country: str

    def __post_init__(self):
        labels = {
            "street": "Street address",
            "city": "City",
            "state": "State",
            "zip_code": "Zip code",
            "country": "Country",
        }
        for name, label in labels.items():
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise DomainValidationError(f"{label} is required")
            object.__setattr__(self, name, value.strip())

    @classmethod
    def create(cls, street: str, city: str, state: str, zip_code: str, country: str) -> Validated['Address']:
        return validated(cls, street, city, state, zip_code, country)

    @property
    def full_address(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip_code}, {self.country}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "country": self.country
        }

    def __str__(self) -> str:
        return self.full_address


_UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$',
    re.IGNORECASE
)


@dataclass(frozen=True)
class Identifier:
    """
    Value Object: UUID-shaped identifier
    """
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not self.value.strip():
            raise DomainValidationError(f"{type(self).__name__} cannot be empty")
        if not _UUID_PATTERN.match(self.value.strip()):
            raise DomainValidationError(f"{type(self).__name__} must be a valid UUID: {self.value}")
        object.__setattr__(self, 'value', self.value.strip().lower())

    @classmethod
    def generate(cls):
        return cls(str(uuid.uuid4()))

    @classmethod
    def create(cls, value: str) -> Validated:
        return validated(cls, value)

    def __str__(self) -> str:
        return self.value


class UserId(Identifier):
    """Identifier of a booking customer"""
    pass


class RuleId(Identifier):
    """Identifier of a discount rule"""
    pass


# ============================================================================
# ENUMS FOR DOMAIN TYPES
# ============================================================================

class VehicleType(Enum):
    """
    Enumeration of vehicle types
    Each type may have a different parking rate multiplier
    """
    CAR = "car"
    MOTORCYCLE = "motorcycle"
    TRUCK = "truck"
    VAN = "van"
    BUS = "bus"
    SUV = "suv"

    def get_parking_rate_multiplier(self) -> Decimal:
        """Get parking rate multiplier for this vehicle type"""
        multipliers = {
            VehicleType.MOTORCYCLE: Decimal('0.5'),  # 50% discount for motorcycles
        }
        return multipliers.get(self, Decimal('1.0'))

    def __str__(self) -> str:
        names = {
            VehicleType.SUV: "SUV",
        }
        return names.get(self, self.value.title())


class DiscountType(Enum):
    """
    Enumeration of discount categories
    """
    SENIOR = "senior"   # Senior citizen (60+)
    PWD = "pwd"         # Person with disability
    CUSTOM = "custom"   # Operator-defined promotion

    @property
    def is_statutory(self) -> bool:
        """Senior and PWD discounts are mandated by law, custom ones are not"""
        return self in (DiscountType.SENIOR, DiscountType.PWD)

    def __str__(self) -> str:
        names = {
            DiscountType.SENIOR: "Senior Citizen",
            DiscountType.PWD: "Person with Disability",
            DiscountType.CUSTOM: "Custom",
        }
        return names[self]


# ============================================================================
# DOMAIN ENTITIES
# ============================================================================

class Entity:
    """
    Base class for all domain entities
    Provides common functionality for entities with identity
    """

    def __init__(self, id: Optional[str] = None):
        self._id = id or str(uuid.uuid4())

    @property
    def id(self) -> str:
        """Get entity ID"""
        return self._id

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID and type"""
        if not isinstance(other, Entity):
            return False
        return self.id == other.id and type(self) == type(other)

    def __hash__(self) -> int:
        """Hash based on ID and type"""
        return hash((self.id, type(self).__name__))

    def __repr__(self) -> str:
        """Representation for debugging"""
        return f"{type(self).__name__}(id={self.id})"
