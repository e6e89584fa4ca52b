"""Shared test fixtures for multicity."""

from pathlib import Path

import pytest
import yaml

from multicity.config import SearchSettings
from tests.helpers import FakeSearchAPI

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fake_api():
    return FakeSearchAPI()


@pytest.fixture
def fast_settings():
    """Default thresholds with no delay between poll cycles."""
    return SearchSettings(poll_interval=0)


@pytest.fixture
def load_yaml():
    """Return a function that loads a YAML fixture file."""

    def _load(name: str):
        path = FIXTURES_DIR / name
        with open(path) as f:
            return yaml.safe_load(f)

    return _load
