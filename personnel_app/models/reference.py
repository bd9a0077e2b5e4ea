# personnel_app/models/reference.py

from __future__ import annotations

from sqlalchemy import ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class Citizenship(BaseModel):
    """Citizenship reference entry; ``requires_patent`` marks work-permit countries."""

    __tablename__ = "citizenships"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False, unique=True)
    requires_patent: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)

    synonyms = relationship("CitizenshipSynonym", back_populates="citizenship", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Citizenship {self.name}>"


class CitizenshipSynonym(BaseModel):
    __tablename__ = "citizenship_synonyms"

    id: Mapped[int] = mapped_column(primary_key=True)
    citizenship_id: Mapped[int] = mapped_column(
        ForeignKey("citizenships.id", ondelete="CASCADE"), nullable=False, index=True
    )
    synonym: Mapped[str] = mapped_column(db.String(120), nullable=False)

    citizenship = relationship("Citizenship", back_populates="synonyms")


class Position(BaseModel):
    __tablename__ = "positions"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(db.String(200), nullable=False, unique=True)

    def __repr__(self):
        return f"<Position {self.name}>"
