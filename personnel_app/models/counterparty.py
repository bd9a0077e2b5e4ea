# personnel_app/models/counterparty.py

from __future__ import annotations

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class Counterparty(BaseModel):
    """Legal entity employees are registered under (contractor or sub-contractor)."""

    __tablename__ = "counterparties"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(255), nullable=False)
    inn: Mapped[str] = mapped_column(db.String(12), nullable=False, index=True)
    kpp: Mapped[str | None] = mapped_column(db.String(9), nullable=True)

    subcontractor_links = relationship(
        "CounterpartySubcontractor",
        foreign_keys="CounterpartySubcontractor.parent_counterparty_id",
        back_populates="parent",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Counterparty {self.name}>"


class CounterpartySubcontractor(BaseModel):
    """Parent counterparty -> registered sub-contractor link."""

    __tablename__ = "counterparty_subcontractors"
    __table_args__ = (
        UniqueConstraint("parent_counterparty_id", "child_counterparty_id", name="uq_counterparty_subcontractor"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    parent_counterparty_id: Mapped[int] = mapped_column(
        ForeignKey("counterparties.id", ondelete="CASCADE"), nullable=False, index=True
    )
    child_counterparty_id: Mapped[int] = mapped_column(
        ForeignKey("counterparties.id", ondelete="CASCADE"), nullable=False, index=True
    )

    parent = relationship("Counterparty", foreign_keys=[parent_counterparty_id], back_populates="subcontractor_links")
    child = relationship("Counterparty", foreign_keys=[child_counterparty_id])
