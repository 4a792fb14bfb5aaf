"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import pytest
import sys
from pathlib import Path

from loguru import logger

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(Path(__file__).parent))

from skilltree.collaborators.memory import InMemoryPlatform  # noqa: E402
from skilltree.config import Settings  # noqa: E402
from skilltree.models import Curriculum, FinalTest, Unit  # noqa: E402
from skilltree.session import AttemptStore, TestSession  # noqa: E402

from factories import questions_for  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory collaborators)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fixtures_dir():
    return PROJECT_ROOT / "tests" / "fixtures"


@pytest.fixture
def settings(tmp_path):
    """Settings with tiny overlay timers and a temp attempt directory."""
    return Settings(
        _env_file=None,
        session_dir=tmp_path / "attempts",
        streak_overlay_seconds=0.01,
        mistake_overlay_seconds=0.01,
        success_overlay_seconds=0.01,
        ad_interstitial_seconds=0.01,
    )


@pytest.fixture
def units():
    """
    Two rows on a 5-wide grid.

        row 0:  1  2  3  .  .
        row 1:  4* .  5  .  .     (* optional)
    """
    return [
        Unit(id=1, position=0, name="Greetings"),
        Unit(id=2, position=1, name="Numbers"),
        Unit(id=3, position=2, name="Colors"),
        Unit(id=4, position=5, mandatory=False, name="Songs"),
        Unit(id=5, position=7, name="Food"),
    ]


@pytest.fixture
def curriculum(units):
    return Curriculum(
        id="spanish",
        title="Spanish Basics",
        units=tuple(units),
        final_test=FinalTest(id="spanish-final", passing_score=80),
    )


@pytest.fixture
def platform(curriculum, tmp_path):
    """In-memory platform with 5 questions per unit and 4 final-test questions."""
    return InMemoryPlatform(
        curriculum=curriculum,
        unit_questions={u.id: questions_for(f"u{u.id}", 5) for u in curriculum.units},
        final_questions=questions_for("final", 4),
        hearts=5,
        attempt_store=AttemptStore(tmp_path / "attempts"),
        seed=7,
    )


@pytest.fixture
def make_session(platform, settings):
    """Factory for sessions of user 'ana' against the in-memory platform."""
    def factory(**kwargs):
        kwargs.setdefault("settings", settings)
        return TestSession("ana", platform, platform, **kwargs)
    return factory


@pytest.fixture
def log_messages():
    """Capture loguru messages emitted during the test."""
    messages = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
