import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.enums import BotStatus, BotType
from app.models.ids import new_uuid7, utc_now


class Bot(Base):
    __tablename__ = "bots"
    __table_args__ = (
        Index(
            "uq_bots_current_order_live",
            "current_order_id",
            unique=True,
            sqlite_where=text("current_order_id IS NOT NULL AND deleted_at IS NULL"),
            postgresql_where=text("current_order_id IS NOT NULL AND deleted_at IS NULL"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=new_uuid7)
    bot_type: Mapped[BotType] = mapped_column(
        Enum(BotType, name="bot_type", native_enum=False),
        nullable=False,
        default=BotType.NORMAL,
    )
    status: Mapped[BotStatus] = mapped_column(
        Enum(BotStatus, name="bot_status", native_enum=False),
        nullable=False,
        default=BotStatus.IDLE,
    )
    # Points at orders.id without a foreign key: orders.bot_id already references bots.
    current_order_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
