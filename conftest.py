# conftest.py

import os

import pytest

# app.py picks its config class from FLASK_ENV at import time
os.environ["FLASK_ENV"] = "testing"

from app import app as flask_app  # noqa: E402
from personnel_app.importer import init_importer  # noqa: E402
from personnel_app.models import (  # noqa: E402
    Citizenship,
    CitizenshipSynonym,
    Counterparty,
    CounterpartySubcontractor,
    Position,
    db,
)

# Reapplied before every test; tests mutate the shared app's config
TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "test-secret-key-for-testing-only",
    "MONITORING_ENABLED": False,
    "ENABLE_FILE_LOGGING": False,
    "ENABLE_CONSOLE_LOGGING": False,
    "LOG_LEVEL": "WARNING",
    "IMPORTER_ENABLED": True,
    "IMPORTER_MAX_RECORDS": 5000,
    "IMPORTER_BATCH_SIZE": 100,
    "IMPORTER_MIN_AGE": 16,
    "IMPORTER_MAX_AGE": 80,
    "IMPORTER_API_BASE_URL": None,
    "IMPORTER_API_TOKEN": None,
    "IMPORTER_EXISTING_CACHE_TTL_SECONDS": 0,
}


@pytest.fixture(scope="function")
def app():
    """The shared application with importer state reset and an empty schema."""
    flask_app.config.update(TEST_CONFIG)
    init_importer(flask_app)

    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        yield flask_app
        db.session.remove()
        db.drop_all()


@pytest.fixture(autouse=True)
def app_context(app):
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def caller(app):
    """The importing organization (general contractor)."""
    counterparty = Counterparty(name="ООО Генподряд", inn="7701234567", kpp="770101001")
    db.session.add(counterparty)
    db.session.commit()
    return counterparty


@pytest.fixture
def subcontractor(caller):
    """A registered sub-contractor of ``caller`` without a stored sub-code."""
    counterparty = Counterparty(name="ООО Субподряд", inn="7702345678", kpp=None)
    db.session.add(counterparty)
    db.session.flush()
    db.session.add(
        CounterpartySubcontractor(parent_counterparty_id=caller.id, child_counterparty_id=counterparty.id)
    )
    db.session.commit()
    return counterparty


@pytest.fixture
def foreign_counterparty(app):
    """A counterparty unrelated to ``caller``."""
    counterparty = Counterparty(name="ООО Сторонняя", inn="7703456789", kpp="770301001")
    db.session.add(counterparty)
    db.session.commit()
    return counterparty


@pytest.fixture
def citizenships(app):
    """Reference citizenships: Russia (no work card) and Uzbekistan (work card required)."""
    russia = Citizenship(name="Россия", requires_patent=False)
    uzbekistan = Citizenship(name="Узбекистан", requires_patent=True)
    db.session.add_all([russia, uzbekistan])
    db.session.flush()
    db.session.add_all(
        [
            CitizenshipSynonym(citizenship_id=russia.id, synonym="РФ"),
            CitizenshipSynonym(citizenship_id=uzbekistan.id, synonym="Республика Узбекистан"),
        ]
    )
    db.session.commit()
    return {"russia": russia, "uzbekistan": uzbekistan}


@pytest.fixture
def positions(app):
    position = Position(name="Монтажник")
    db.session.add(position)
    db.session.commit()
    return {"installer": position}
