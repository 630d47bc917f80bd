"""
Module: sourcing_kernel.models.actor
Responsibility: ORM persistence for vendors and suppliers.
Architecture position: Kernel > Models.  May import from db/ only.

Actors are owned by the identity subsystem.  The kernel reads them and
writes only ``trust_score`` (TrustScoreService.refresh).  Suppliers carry
the payment terms they offer; order due dates are derived from it.
"""

from sqlalchemy import Boolean, CheckConstraint, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from sourcing_kernel.db.base import TrackedBase


class Actor(TrackedBase):
    """A vendor (buyer) or supplier (seller) account."""

    __tablename__ = "actors"

    __table_args__ = (
        CheckConstraint(
            "role IN ('vendor', 'supplier')",
            name="ck_actors_valid_role",
        ),
        CheckConstraint(
            "trust_score >= 0 AND trust_score <= 100",
            name="ck_actors_trust_score_range",
        ),
        Index("ix_actors_role_active", "role", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, unique=True)

    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    trust_score: Mapped[int] = mapped_column(nullable=False, default=50)
    payment_terms_days: Mapped[int] = mapped_column(nullable=False, default=30)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Actor {self.role}:{self.name}>"
