# app/db/models.py
import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    Integer, String, Text, Date, DateTime, Boolean, ForeignKey, UniqueConstraint,
    Numeric, Index, Enum as SAEnum
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from app.db.base import Base
from app.core.clock import utcnow
from app.core.pipeline import HistoryType, StageColor
from app.core.service_order_workflow import ServiceOrderStatus, calculate_total

convention = {
    "ix": "ix__%(column_0_label)s",
    "uq": "uq__%(table_name)s__%(column_0_name)s",
    "ck": "ck__%(table_name)s__%(constraint_name)s",
    "fk": "fk__%(table_name)s__%(column_0_name)s__%(referred_table_name)s",
    "pk": "pk__%(table_name)s",
}

Base.metadata.naming_convention = convention


def _enum_column(enum_cls, length: int = 40) -> SAEnum:
    # Stored as the enum values, validated on write
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class CreatedAtMixin:
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Organization(Base, CreatedAtMixin):
    __tablename__ = "organization"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)


class Unit(Base, CreatedAtMixin):
    __tablename__ = "unit"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    phone: Mapped[str | None] = mapped_column(Text)


class Service(Base, CreatedAtMixin):
    """Catalog item. Soft-deactivated, never deleted, so old orders keep their reference."""
    __tablename__ = "service"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))
    estimated_time_minutes: Mapped[int | None] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class PipelineStage(Base):
    """Kanban column. `key` is set on default stages and is what automation targets."""
    __tablename__ = "pipeline_stage"
    __table_args__ = (
        UniqueConstraint("organization_id", "key", name="uq_pipeline_stage_org_key"),
        Index("ix_pipeline_stage_org_order", "organization_id", "order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    key: Mapped[str | None] = mapped_column(String(40))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[StageColor] = mapped_column(_enum_column(StageColor, 10), nullable=False, default=StageColor.BLUE)
    order: Mapped[int] = mapped_column("order", Integer, nullable=False, default=0)


class Lead(Base, CreatedAtMixin):
    __tablename__ = "lead"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str | None] = mapped_column(Text)
    email: Mapped[str | None] = mapped_column(Text)
    address: Mapped[str | None] = mapped_column(Text)
    birth_date: Mapped[dt.date | None] = mapped_column(Date)
    national_id: Mapped[str | None] = mapped_column(String(20))
    car_model: Mapped[str | None] = mapped_column(Text)
    car_plate: Mapped[str | None] = mapped_column(String(16))
    unit_id: Mapped[int | None] = mapped_column(ForeignKey("unit.id", ondelete="SET NULL"), index=True)
    column_id: Mapped[int] = mapped_column(ForeignKey("pipeline_stage.id"), nullable=False, index=True)
    assigned_user_id: Mapped[int | None] = mapped_column(Integer)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    history = relationship(
        "LeadHistory",
        order_by=lambda: (LeadHistory.timestamp.desc(), LeadHistory.id.desc()),
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    # Concurrent writers fail with StaleDataError instead of overwriting each other
    __mapper_args__ = {"version_id_col": version_id}


class LeadHistory(Base):
    """Append-only activity log entry of a lead."""
    __tablename__ = "lead_history"
    __table_args__ = (
        Index("ix_lead_history_lead_ts", "lead_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("lead.id", ondelete="CASCADE"), nullable=False)
    timestamp: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    type: Mapped[HistoryType] = mapped_column(_enum_column(HistoryType), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    user_id: Mapped[int | None] = mapped_column(Integer)


class Appointment(Base, CreatedAtMixin):
    __tablename__ = "appointment"
    __table_args__ = (
        Index("ix_appointment_org_date", "organization_id", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("lead.id", ondelete="CASCADE"), nullable=False, index=True)
    unit_id: Mapped[int] = mapped_column(ForeignKey("unit.id"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    time: Mapped[str] = mapped_column(String(5), nullable=False)
    service_id: Mapped[int | None] = mapped_column(ForeignKey("service.id"))
    service_type: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    attended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class ServiceOrder(Base, CreatedAtMixin):
    __tablename__ = "service_order"
    __table_args__ = (
        UniqueConstraint("organization_id", "os_number", name="uq_service_order_org_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    os_number: Mapped[str] = mapped_column(String(20), nullable=False)
    lead_id: Mapped[int] = mapped_column(ForeignKey("lead.id", ondelete="CASCADE"), nullable=False, index=True)
    vehicle_info: Mapped[str | None] = mapped_column(Text)
    reported_issues: Mapped[str | None] = mapped_column(Text)
    status: Mapped[ServiceOrderStatus] = mapped_column(
        _enum_column(ServiceOrderStatus, 20), nullable=False, default=ServiceOrderStatus.DIAGNOSIS
    )
    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime)
    primary_service_id: Mapped[int | None] = mapped_column(ForeignKey("service.id"))

    items = relationship(
        "ServiceOrderItem",
        order_by="ServiceOrderItem.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    @property
    def total_cost(self) -> Decimal:
        return calculate_total(item.cost for item in self.items)


class ServiceOrderItem(Base):
    __tablename__ = "service_order_item"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    service_order_id: Mapped[int] = mapped_column(ForeignKey("service_order.id", ondelete="CASCADE"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    service_id: Mapped[int | None] = mapped_column(ForeignKey("service.id"))
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    parts: Mapped[str | None] = mapped_column(Text)
    cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0"))


class ServiceOrderCounter(Base):
    """Per-organization, per-month sequence behind service order numbers."""
    __tablename__ = "service_order_counter"
    __table_args__ = (
        UniqueConstraint("organization_id", "period", name="uq_service_order_counter_org_period"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, index=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    period: Mapped[str] = mapped_column(String(6), nullable=False)
    next_value: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
