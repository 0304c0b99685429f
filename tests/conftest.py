"""
Pytest configuration and shared fixtures.

The whole suite runs against one in-memory SQLite database (StaticPool), recreated
for every test, and a temporary artifact directory.
"""
import copy
import os
import tempfile

# Must be set before any project module builds its engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("PDF_UPLOADS_DIR", tempfile.mkdtemp(prefix="sbp_pdfs_"))

import pytest

from database import crud
from database.database import Base, SessionLocal, engine
from synthesis.artifact_store import ArtifactStore
from synthesis.templates import TemplateCatalog


# ============================================================================
# Sample content
# ============================================================================

def _idea(title):
    return {
        "title": title,
        "description": f"{title} is used in rural Zimbabwe to reduce contact with infested water.",
        "merits": ["Low cost to set up", "Uses locally available materials"],
        "demerits": ["Needs regular maintenance", "Depends on community participation"],
    }


BILHARZIA_RUBRIC = {
    "stage1": {
        "problemDescription": "Many learners in Mashonaland East contract bilharzia from river water.",
        "statementOfIntent": (
            "I intend to design a low-cost water filtration and awareness system. "
            "The system will reduce contact with contaminated water. "
            "It will be affordable for rural households."
        ),
        "specifications": [
            "Must filter at least 20 litres per hour",
            "Must cost less than US$15 to build",
            "Must be maintainable with local tools",
        ],
    },
    "stage2": {
        "relatedIdeas": [
            _idea("Mass drug administration"),
            _idea("Snail control with molluscicides"),
            _idea("Protected water points"),
        ],
    },
    "stage3": {
        "possibleSolutions": [
            _idea("Sand and charcoal filter"),
            _idea("Solar water disinfection"),
            _idea("School awareness campaign"),
        ],
    },
    "stage4": {
        "chosenSolution": "A sand and charcoal filter combined with a school awareness campaign.",
        "justification": [
            "It uses materials that are available in every village.",
            "It tackles both infection and awareness at the same time.",
        ],
        "refinements": [
            {"title": "Layered filter bed", "description": "Added gravel layers to slow the flow."},
            {"title": "Covered storage", "description": "Added a lid so filtered water stays clean."},
            {"title": "Illustrated posters", "description": "Posters explain the snail life cycle."},
        ],
    },
    "stage5": {
        "presentationType": "artifact",
        "description": "The final filter is a two-bucket system with layered sand and charcoal.",
        "features": [
            "Three-layer filter bed",
            "Covered clean-water bucket",
            "Tap for hygienic collection",
            "Awareness poster pack",
        ],
        "implementation": "The filter was built at school and tested with river water samples.",
    },
    "stage6": {
        "relevanceToIntent": "The filter met the flow and cost targets in the statement of intent.",
        "challenges": ["Charcoal was hard to source", "Testing took longer than planned"],
        "recommendations": ["Test with a clinic laboratory", "Train prefects to maintain filters"],
    },
}


@pytest.fixture
def rubric_payload():
    return copy.deepcopy(BILHARZIA_RUBRIC)


@pytest.fixture
def generate_args(rubric_payload):
    return {
        "title": "Bilharzia Prevention",
        "subject": "Biology",
        "author": "Tariro Moyo",
        "level": "O-Level",
        "school": "Goromonzi High School",
        **rubric_payload,
    }


# ============================================================================
# Fixtures: Database & storage
# ============================================================================

@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def store(tmp_path):
    return ArtifactStore(tmp_path / "pdfs")


@pytest.fixture
def seeded_templates(db):
    TemplateCatalog(db).seed_defaults()
    return db


@pytest.fixture
def user(db):
    return crud.create_user(db, user_id="usr_tariro", email="tariro@example.com", name="Tariro", credits=5)


@pytest.fixture
def broke_user(db):
    return crud.create_user(db, user_id="usr_broke", email="broke@example.com", credits=0)
