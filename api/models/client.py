"""Client and Competitor models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from api.database import Base

if TYPE_CHECKING:
    from api.models.effectiveness import EffectivenessRun


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Client(Base):
    """A customer whose website is scored."""

    __tablename__ = "clients"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    website_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    industry_vertical: Mapped[str | None] = mapped_column(String(100), nullable=True)
    business_size: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Completion time of the last successful client run (cooldown source)
    last_effectiveness_run: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        onupdate=_utcnow,
        nullable=False,
    )

    competitors: Mapped[list[Competitor]] = relationship(
        "Competitor",
        back_populates="client",
        cascade="all, delete-orphan",
        order_by="Competitor.created_at",
    )
    runs: Mapped[list[EffectivenessRun]] = relationship(
        "EffectivenessRun",
        back_populates="client",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Competitor(Base):
    """A competitor domain tracked for a client."""

    __tablename__ = "competitors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    domain: Mapped[str] = mapped_column(String(255), nullable=False)
    label: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        server_default=func.now(),
        nullable=False,
    )

    client: Mapped[Client] = relationship("Client", back_populates="competitors")

    @property
    def website_url(self) -> str:
        """Domain as a fetchable URL."""
        if self.domain.startswith(("http://", "https://")):
            return self.domain
        return f"https://{self.domain}"

    @property
    def display_name(self) -> str:
        return self.label or self.domain
