# File: src/parkfare/infrastructure/repositories.py
"""
Repository Pattern Implementation for the Pricing Engine

Repositories give the application layer a collection-like view of the
external rule store and the pricing hierarchy, hiding how they are stored.

Repository Types:
1. Discount rule repositories - rules managed by operators (global or per operator)
2. Pricing hierarchy repository - location / section / zone / spot rate overrides

Storage Implementations:
- InMemoryDiscountRuleRepository - For testing and development
- SQLAlchemyDiscountRuleRepository - For relational databases
- PricingHierarchyRepository - For relational databases
"""

from abc import ABC, abstractmethod
from typing import Type, TypeVar, Generic, Optional, List, Dict, Callable, Set
from datetime import datetime, timezone
from decimal import Decimal
import logging
from uuid import uuid4

from sqlalchemy import (
    create_engine, Column, String, Boolean, DateTime, ForeignKey, Text,
    Numeric, JSON, select, func, or_
)
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError, IntegrityError

from ..domain.models import Money, DiscountType, DEFAULT_CURRENCY
from ..domain.pricing import PricingChain, PricingConfig, HierarchyLevel
from ..domain.discounts import DiscountRule, DiscountCondition

# Type variables for generic repositories
T = TypeVar('T')  # Entity type
ID = TypeVar('ID')  # ID type


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PricingHierarchyError(ValueError):
    """Raised when stored pricing nodes do not form a valid override chain"""
    pass


# ============================================================================
# REPOSITORY INTERFACES
# ============================================================================

class Repository(ABC, Generic[T, ID]):
    """Base repository interface"""

    @abstractmethod
    def add(self, entity: T) -> T:
        """Add an entity to the repository"""
        pass

    @abstractmethod
    def get(self, id: ID) -> Optional[T]:
        """Get an entity by ID"""
        pass

    @abstractmethod
    def get_all(self, skip: int = 0, limit: int = 100) -> List[T]:
        """Get all entities with pagination"""
        pass

    @abstractmethod
    def update(self, entity: T) -> T:
        """Update an entity"""
        pass

    @abstractmethod
    def delete(self, id: ID) -> bool:
        """Delete an entity by ID"""
        pass

    @abstractmethod
    def exists(self, id: ID) -> bool:
        """Check if an entity exists"""
        pass

    @abstractmethod
    def count(self) -> int:
        """Count all entities"""
        pass


class DiscountRuleRepository(Repository[DiscountRule, str], ABC):
    """Repository for discount rules with operator scoping"""

    @abstractmethod
    def find_active(self, operator_id: Optional[str] = None) -> List[DiscountRule]:
        """Active global rules, plus the operator's own when ``operator_id`` is given"""
        pass


# ============================================================================
# SQLALCHEMY ORM MODELS
# ============================================================================

Base = declarative_base()


class DiscountRuleModel(Base):
    """SQLAlchemy model for DiscountRule"""
    __tablename__ = 'discount_rules'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    name = Column(String(100), nullable=False)
    discount_type = Column(String(20), nullable=False)
    percentage = Column(Numeric(5, 2), nullable=False)
    is_vat_exempt = Column(Boolean, nullable=False, default=False)
    conditions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    description = Column(Text)

    # NULL for rules that apply at every operator
    operator_id = Column(String(36), index=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class PricingNodeModel(Base):
    """SQLAlchemy model for one level of the pricing hierarchy"""
    __tablename__ = 'pricing_nodes'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    level = Column(String(20), nullable=False)
    parent_id = Column(String(36), ForeignKey('pricing_nodes.id'), index=True)
    name = Column(String(100), nullable=False)

    # NULL when the node inherits its rate
    base_rate = Column(Numeric(10, 2))
    currency = Column(String(3), nullable=False, default=DEFAULT_CURRENCY)


# ============================================================================
# MAPPERS (Domain <-> ORM)
# ============================================================================

class Mapper:
    """Maps between domain models and ORM models"""

    @staticmethod
    def discount_rule_to_orm(rule: DiscountRule, operator_id: Optional[str] = None) -> DiscountRuleModel:
        """Map DiscountRule domain model to ORM model"""
        return DiscountRuleModel(
            id=rule.id,
            name=rule.name,
            discount_type=rule.discount_type.value,
            percentage=rule.percentage.value,
            is_vat_exempt=rule.is_vat_exempt,
            conditions=[condition.to_dict() for condition in rule.conditions],
            is_active=rule.is_active,
            description=rule.description,
            operator_id=operator_id,
            created_at=rule.created_at,
            updated_at=rule.updated_at
        )

    @staticmethod
    def discount_rule_to_domain(model: DiscountRuleModel) -> DiscountRule:
        """Map ORM model to DiscountRule domain model"""
        conditions = [
            DiscountCondition(
                field=data["field"],
                operator=data["operator"],
                value=data.get("value"),
                id=data.get("id") or str(uuid4())
            )
            for data in (model.conditions or [])
        ]

        return DiscountRule(
            name=model.name,
            discount_type=DiscountType(model.discount_type),
            percentage=Decimal(model.percentage),
            is_vat_exempt=model.is_vat_exempt,
            conditions=conditions,
            is_active=model.is_active,
            description=model.description,
            id=model.id,
            created_at=model.created_at,
            updated_at=model.updated_at
        )

    @staticmethod
    def pricing_node_to_config(model: PricingNodeModel) -> Optional[PricingConfig]:
        """Map a pricing node to its own configuration, if it has one"""
        if model.base_rate is None:
            return None
        return PricingConfig(Money(Decimal(model.base_rate), model.currency))


# ============================================================================
# IN-MEMORY REPOSITORIES (For Testing)
# ============================================================================

class InMemoryRepository(Repository[T, str]):
    """In-memory repository for testing"""

    def __init__(self):
        self._storage: Dict[str, T] = {}
        self._logger = logging.getLogger(self.__class__.__name__)

    def add(self, entity: T) -> T:
        entity_id = getattr(entity, 'id')
        self._storage[entity_id] = entity
        self._logger.debug(f"Added entity {entity_id}")
        return entity

    def get(self, id: str) -> Optional[T]:
        return self._storage.get(id)

    def get_all(self, skip: int = 0, limit: int = 100) -> List[T]:
        items = list(self._storage.values())
        return items[skip:skip + limit]

    def update(self, entity: T) -> T:
        entity_id = getattr(entity, 'id')
        if entity_id not in self._storage:
            raise KeyError(f"Entity {entity_id} not found")

        self._storage[entity_id] = entity
        self._logger.debug(f"Updated entity {entity_id}")
        return entity

    def delete(self, id: str) -> bool:
        if id in self._storage:
            del self._storage[id]
            self._logger.debug(f"Deleted entity {id}")
            return True
        return False

    def exists(self, id: str) -> bool:
        return id in self._storage

    def count(self) -> int:
        return len(self._storage)

    def clear(self):
        """Clear all data (for testing)"""
        self._storage.clear()


class InMemoryDiscountRuleRepository(InMemoryRepository[DiscountRule], DiscountRuleRepository):
    """In-memory repository for discount rules"""

    def __init__(self):
        super().__init__()
        self._operators: Dict[str, Optional[str]] = {}

    def add(self, entity: DiscountRule, operator_id: Optional[str] = None) -> DiscountRule:
        self._operators[entity.id] = operator_id
        return super().add(entity)

    def delete(self, id: str) -> bool:
        self._operators.pop(id, None)
        return super().delete(id)

    def clear(self):
        super().clear()
        self._operators.clear()

    def find_active(self, operator_id: Optional[str] = None) -> List[DiscountRule]:
        return [
            rule for rule in self._storage.values()
            if rule.is_active and self._operators.get(rule.id) in (None, operator_id)
        ]


# ============================================================================
# SQLALCHEMY REPOSITORIES
# ============================================================================

class SQLAlchemyRepository(Repository[T, str], ABC):
    """Base SQLAlchemy repository"""

    # Columns owned by the stored row; update never overwrites them
    preserved_columns = frozenset({"id"})

    def __init__(self, session: Session):
        self.session = session
        self._logger = logging.getLogger(self.__class__.__name__)

    @property
    @abstractmethod
    def model_class(self) -> Type[Base]:
        """Return SQLAlchemy model class"""
        pass

    @abstractmethod
    def to_domain(self, model: Base) -> T:
        """Convert ORM model to domain model"""
        pass

    @abstractmethod
    def to_orm(self, entity: T) -> Base:
        """Convert domain model to ORM model"""
        pass

    def _add_model(self, model: Base) -> None:
        try:
            self.session.add(model)
            self.session.flush()
            self._logger.debug(f"Added entity: {model.id}")
        except IntegrityError as e:
            self.session.rollback()
            self._logger.error(f"Integrity error adding entity: {e}")
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error adding entity: {e}")
            raise

    def add(self, entity: T) -> T:
        self._add_model(self.to_orm(entity))
        return entity

    def get(self, id: str) -> Optional[T]:
        try:
            model = self.session.get(self.model_class, str(id))
            if model:
                return self.to_domain(model)
            return None
        except SQLAlchemyError as e:
            self._logger.error(f"Database error getting entity {id}: {e}")
            raise

    def get_all(self, skip: int = 0, limit: int = 100) -> List[T]:
        try:
            models = self.session.scalars(
                select(self.model_class).order_by(self.model_class.id).offset(skip).limit(limit)
            ).all()
            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error getting all entities: {e}")
            raise

    def update(self, entity: T) -> T:
        try:
            entity_id = getattr(entity, 'id')
            model = self.session.get(self.model_class, str(entity_id))
            if not model:
                raise ValueError(f"Entity {entity_id} not found")

            updated_model = self.to_orm(entity)

            # Copy updated fields to existing model, None clears a column
            for column in self.model_class.__table__.columns:
                if column.name not in self.preserved_columns:
                    setattr(model, column.name, getattr(updated_model, column.name))

            self.session.flush()
            self._logger.debug(f"Updated entity: {entity_id}")
            return entity
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error updating entity: {e}")
            raise

    def delete(self, id: str) -> bool:
        try:
            model = self.session.get(self.model_class, str(id))
            if model:
                self.session.delete(model)
                self.session.flush()
                self._logger.debug(f"Deleted entity: {id}")
                return True
            return False
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error deleting entity {id}: {e}")
            raise

    def exists(self, id: str) -> bool:
        return self.session.get(self.model_class, str(id)) is not None

    def count(self) -> int:
        try:
            return self.session.scalar(select(func.count()).select_from(self.model_class))
        except SQLAlchemyError as e:
            self._logger.error(f"Database error counting entities: {e}")
            raise


class SQLAlchemyDiscountRuleRepository(SQLAlchemyRepository[DiscountRule], DiscountRuleRepository):
    """SQLAlchemy repository for discount rules"""

    preserved_columns = frozenset({"id", "operator_id", "created_at"})

    @property
    def model_class(self) -> Type[Base]:
        return DiscountRuleModel

    def to_domain(self, model: DiscountRuleModel) -> DiscountRule:
        return Mapper.discount_rule_to_domain(model)

    def to_orm(self, entity: DiscountRule) -> DiscountRuleModel:
        return Mapper.discount_rule_to_orm(entity)

    def add(self, entity: DiscountRule, operator_id: Optional[str] = None) -> DiscountRule:
        self._add_model(Mapper.discount_rule_to_orm(entity, operator_id))
        return entity

    def find_active(self, operator_id: Optional[str] = None) -> List[DiscountRule]:
        try:
            scope = DiscountRuleModel.operator_id.is_(None)
            if operator_id is not None:
                scope = or_(scope, DiscountRuleModel.operator_id == operator_id)

            models = self.session.scalars(
                select(DiscountRuleModel)
                .where(DiscountRuleModel.is_active.is_(True), scope)
                .order_by(DiscountRuleModel.created_at, DiscountRuleModel.id)
            ).all()
            return [self.to_domain(model) for model in models]
        except SQLAlchemyError as e:
            self._logger.error(f"Database error finding active discount rules: {e}")
            raise

    def find_by_operator(self, operator_id: str) -> List[DiscountRule]:
        """Rules owned by an operator, active or not"""
        models = self.session.scalars(
            select(DiscountRuleModel).where(DiscountRuleModel.operator_id == operator_id)
        ).all()
        return [self.to_domain(model) for model in models]


class PricingHierarchyRepository:
    """
    Stores pricing nodes and assembles override chains.
    A chain is read by following ``parent_id`` from a node up to its location.
    """

    def __init__(self, session: Session):
        self.session = session
        self._logger = logging.getLogger(self.__class__.__name__)

    def add_node(
        self,
        level: HierarchyLevel,
        name: str,
        base_rate: Optional[Money] = None,
        parent_id: Optional[str] = None,
        id: Optional[str] = None
    ) -> str:
        """Store a node and return its id"""
        model = PricingNodeModel(
            id=id or str(uuid4()),
            level=level.value,
            parent_id=parent_id,
            name=name,
            base_rate=base_rate.amount if base_rate is not None else None,
            currency=base_rate.currency if base_rate is not None else DEFAULT_CURRENCY
        )
        try:
            self.session.add(model)
            self.session.flush()
        except SQLAlchemyError as e:
            self.session.rollback()
            self._logger.error(f"Database error adding pricing node: {e}")
            raise

        self._logger.debug(f"Added {level.value} pricing node {model.id}")
        return model.id

    def set_base_rate(self, node_id: str, base_rate: Optional[Money]) -> None:
        """Set or clear a node's own rate"""
        model = self.session.get(PricingNodeModel, node_id)
        if model is None:
            raise PricingHierarchyError(f"Pricing node {node_id} not found")

        model.base_rate = base_rate.amount if base_rate is not None else None
        if base_rate is not None:
            model.currency = base_rate.currency
        self.session.flush()

    def load_chain(self, node_id: str) -> PricingChain:
        """Override chain from ``node_id`` (usually a spot) up to its location"""
        order = HierarchyLevel.lookup_order()
        configs: Dict[HierarchyLevel, Optional[PricingConfig]] = {}
        visited: Set[str] = set()
        target_level: Optional[HierarchyLevel] = None
        previous_rank = -1

        current_id: Optional[str] = node_id
        while current_id is not None:
            if current_id in visited:
                raise PricingHierarchyError(f"Pricing hierarchy has a cycle at node {current_id}")
            visited.add(current_id)

            model = self.session.get(PricingNodeModel, current_id)
            if model is None:
                raise PricingHierarchyError(f"Pricing node {current_id} not found")

            level = HierarchyLevel(model.level)
            rank = order.index(level)
            if rank <= previous_rank:
                raise PricingHierarchyError(
                    f"Pricing node {model.id} ({level.value}) cannot be a parent of a more general level"
                )
            previous_rank = rank

            if target_level is None:
                target_level = level
            configs[level] = Mapper.pricing_node_to_config(model)
            current_id = model.parent_id

        if HierarchyLevel.LOCATION not in configs:
            raise PricingHierarchyError(f"Pricing node {node_id} is not attached to a location")
        if configs[HierarchyLevel.LOCATION] is None:
            raise PricingHierarchyError(f"Location of pricing node {node_id} has no base rate")

        return PricingChain(
            location=configs[HierarchyLevel.LOCATION],
            section=configs.get(HierarchyLevel.SECTION),
            zone=configs.get(HierarchyLevel.ZONE),
            spot=configs.get(HierarchyLevel.SPOT),
            target_level=target_level
        )


# ============================================================================
# UNIT OF WORK
# ============================================================================

class SQLAlchemyUnitOfWork:
    """Unit of Work implementation with SQLAlchemy"""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory
        self._logger = logging.getLogger(self.__class__.__name__)

    def __enter__(self):
        self.session = self.session_factory()
        self.discount_rules = SQLAlchemyDiscountRuleRepository(self.session)
        self.pricing_hierarchy = PricingHierarchyRepository(self.session)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            if exc_type is not None:
                self._logger.error(f"Exception in unit of work: {exc_val}")
                self.rollback()
            else:
                self.commit()
        finally:
            self.session.close()

    def commit(self):
        """Commit the transaction"""
        try:
            self.session.commit()
            self._logger.debug("Transaction committed")
        except SQLAlchemyError as e:
            self._logger.error(f"Error committing transaction: {e}")
            self.session.rollback()
            raise

    def rollback(self):
        """Rollback the transaction"""
        self.session.rollback()
        self._logger.debug("Transaction rolled back")


# ============================================================================
# REPOSITORY FACTORY
# ============================================================================

class RepositoryFactory:
    """Factory for creating repositories"""

    @staticmethod
    def create_session_factory(database_url: str = "sqlite:///:memory:") -> sessionmaker:
        """Create a session factory, creating tables if they don't exist"""
        engine = create_engine(database_url, echo=False)
        Base.metadata.create_all(bind=engine)
        return sessionmaker(autocommit=False, autoflush=False, bind=engine)

    @staticmethod
    def create_in_memory_repository() -> InMemoryDiscountRuleRepository:
        """Create in-memory discount rule repository for testing"""
        return InMemoryDiscountRuleRepository()

    @staticmethod
    def create_sqlalchemy_uow(database_url: str) -> SQLAlchemyUnitOfWork:
        """Create SQLAlchemy Unit of Work"""
        return SQLAlchemyUnitOfWork(RepositoryFactory.create_session_factory(database_url))
