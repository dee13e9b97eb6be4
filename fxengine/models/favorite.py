import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fxengine.database import Base
from fxengine.models.exchange_rate import ExchangeRate


class ExchangeRateFavorite(Base):
    __tablename__ = "exchange_rate_favorite"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # Issued by the external auth service; not a local FK
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    exchange_rate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("exchange_rate.id", ondelete="CASCADE"),
        nullable=False,
    )
    # Display rank; also the priority when picking a default rate
    order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    exchange_rate: Mapped[ExchangeRate] = relationship(lazy="joined")

    __table_args__ = (
        UniqueConstraint(
            "user_id", "exchange_rate_id", name="uq_favorite_user_exchange_rate"
        ),
        UniqueConstraint("user_id", "order", name="uq_favorite_user_order"),
    )
