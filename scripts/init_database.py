# scripts/init_database.py

"""
Database initialization script.
This script creates all tables and seeds reference data used by employee imports:
- Citizenships, with the work-card (patent) requirement
- Citizenship synonyms accepted in import spreadsheets
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select  # noqa: E402

from app import app  # noqa: E402
from personnel_app.models import Citizenship, CitizenshipSynonym, db  # noqa: E402

# EAEU member states work without a patent
DEFAULT_CITIZENSHIPS = [
    {"name": "Россия", "requires_patent": False, "synonyms": ["РФ", "Российская Федерация"]},
    {"name": "Беларусь", "requires_patent": False, "synonyms": ["Республика Беларусь", "Белоруссия"]},
    {"name": "Казахстан", "requires_patent": False, "synonyms": ["Республика Казахстан"]},
    {"name": "Армения", "requires_patent": False, "synonyms": ["Республика Армения"]},
    {"name": "Кыргызстан", "requires_patent": False, "synonyms": ["Киргизия", "Кыргызская Республика"]},
    {"name": "Узбекистан", "requires_patent": True, "synonyms": ["Республика Узбекистан"]},
    {"name": "Таджикистан", "requires_patent": True, "synonyms": ["Республика Таджикистан"]},
    {"name": "Азербайджан", "requires_patent": True, "synonyms": ["Азербайджанская Республика"]},
    {"name": "Молдова", "requires_patent": True, "synonyms": ["Молдавия", "Республика Молдова"]},
]


def create_default_citizenships():
    """Create default citizenships and their synonyms"""
    created = 0
    for entry in DEFAULT_CITIZENSHIPS:
        citizenship = db.session.scalars(select(Citizenship).where(Citizenship.name == entry["name"])).first()
        if not citizenship:
            citizenship = Citizenship(name=entry["name"], requires_patent=entry["requires_patent"])
            db.session.add(citizenship)
            db.session.flush()
            created += 1

        existing = {synonym.synonym for synonym in citizenship.synonyms}
        for synonym in entry["synonyms"]:
            if synonym not in existing:
                db.session.add(CitizenshipSynonym(citizenship_id=citizenship.id, synonym=synonym))

    db.session.commit()
    return created


def init_database():
    """Initialize database with tables and reference data"""
    with app.app_context():
        print("Creating database tables...")
        db.create_all()
        print("Database tables created")

        print("Creating default citizenships...")
        created = create_default_citizenships()
        print(f"Created {created} citizenships ({len(DEFAULT_CITIZENSHIPS)} known)")

        print("\nDatabase initialization complete!")
        print("\nNext steps:")
        print("  1. Register counterparties and their sub-contractor links")
        print("  2. Print the import header contract: flask employees template")
        print("  3. Import a workbook: flask employees import FILE --counterparty-id ID")


if __name__ == "__main__":
    init_database()
