# personnel_app/models/__init__.py
"""
Database models package
"""

from .base import BaseModel, db
from .counterparty import Counterparty, CounterpartySubcontractor
from .employee import Employee, EmployeeCardStatus, EmployeeCounterpartyMapping
from .reference import Citizenship, CitizenshipSynonym, Position

__all__ = [
    "db",
    "BaseModel",
    "Counterparty",
    "CounterpartySubcontractor",
    "Employee",
    "EmployeeCardStatus",
    "EmployeeCounterpartyMapping",
    "Citizenship",
    "CitizenshipSynonym",
    "Position",
]
