# personnel_app/models/employee.py

from __future__ import annotations

import enum
from datetime import date

from sqlalchemy import Enum, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, db


class EmployeeCardStatus(str, enum.Enum):
    """Completeness of an employee card."""

    DRAFT = "draft"
    COMPLETE = "complete"


class Employee(BaseModel):
    """Registered employee. ``inn`` is the natural key used by imports."""

    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(primary_key=True)
    last_name: Mapped[str] = mapped_column(db.String(100), nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(db.String(100), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(db.String(100), nullable=True)
    inn: Mapped[str | None] = mapped_column(db.String(12), nullable=True, unique=True, index=True)
    snils: Mapped[str | None] = mapped_column(db.String(11), nullable=True)
    kig: Mapped[str | None] = mapped_column(db.String(9), nullable=True)
    kig_end_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
    birth_date: Mapped[date | None] = mapped_column(db.Date, nullable=True)
    citizenship_id: Mapped[int | None] = mapped_column(ForeignKey("citizenships.id"), nullable=True)
    position_id: Mapped[int | None] = mapped_column(ForeignKey("positions.id"), nullable=True)
    card_status: Mapped[EmployeeCardStatus] = mapped_column(
        Enum(EmployeeCardStatus, name="employee_card_status_enum"),
        nullable=False,
        default=EmployeeCardStatus.DRAFT,
    )

    citizenship = relationship("Citizenship")
    position = relationship("Position")
    counterparty_links = relationship(
        "EmployeeCounterpartyMapping", back_populates="employee", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Employee {self.id}>"

    def missing_card_fields(self) -> list[str]:
        """Names of fields an employee card needs before it counts as complete."""
        required = {
            "last_name": self.last_name,
            "first_name": self.first_name,
            "inn": self.inn,
            "snils": self.snils,
            "birth_date": self.birth_date,
            "citizenship": self.citizenship_id,
            "position": self.position_id,
        }
        if self.citizenship is not None and self.citizenship.requires_patent:
            required["kig"] = self.kig
            required["kig_end_date"] = self.kig_end_date
        return [name for name, value in required.items() if not value]

    def expected_card_status(self) -> EmployeeCardStatus:
        return EmployeeCardStatus.DRAFT if self.missing_card_fields() else EmployeeCardStatus.COMPLETE


class EmployeeCounterpartyMapping(BaseModel):
    """Employee registration under a counterparty."""

    __tablename__ = "employee_counterparty_mappings"
    __table_args__ = (UniqueConstraint("employee_id", "counterparty_id", name="uq_employee_counterparty"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    employee_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    counterparty_id: Mapped[int] = mapped_column(
        ForeignKey("counterparties.id", ondelete="CASCADE"), nullable=False, index=True
    )

    employee = relationship("Employee", back_populates="counterparty_links")
    counterparty = relationship("Counterparty")
