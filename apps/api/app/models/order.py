import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import OrderStatus, OrderType
from app.models.ids import new_uuid7, utc_now


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        # Order numbers are unique among live rows only.
        Index(
            "uq_orders_order_number_live",
            "order_number",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
        # A bot owns at most one live PROCESSING order.
        Index(
            "uq_orders_processing_bot",
            "bot_id",
            unique=True,
            sqlite_where=text("status = 'PROCESSING' AND deleted_at IS NULL"),
            postgresql_where=text("status = 'PROCESSING' AND deleted_at IS NULL"),
        ),
        Index("ix_orders_status_type_number", "status", "type", "order_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid7)
    order_number: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[OrderType] = mapped_column(
        Enum(OrderType, name="order_type", native_enum=False), nullable=False
    )
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status", native_enum=False),
        nullable=False,
        default=OrderStatus.PENDING,
    )
    bot_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("bots.id", ondelete="SET NULL"), nullable=True
    )

    processing_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
