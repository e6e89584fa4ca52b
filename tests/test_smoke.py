"""Smoke tests to verify basic project setup."""

from pathlib import Path


def test_fixtures_dir_exists():
    assert (Path(__file__).parent / "fixtures").is_dir()


def test_seeru_fixture_loads(load_yaml):
    payloads = load_yaml("seeru_results.yaml")
    assert payloads["partial"]["complete"] == 45
    assert len(payloads["partial"]["result"]) == 2


def test_multicity_importable():
    import multicity
    from multicity.search import SegmentOrchestrator

    assert multicity.__version__
    assert SegmentOrchestrator is not None
