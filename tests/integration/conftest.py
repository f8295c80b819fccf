"""Integration test fixtures."""

import json

import pytest


@pytest.fixture
def write_job(tmp_path):
    """Write a planning job document to a temporary file and return its path."""

    def _write(doc: dict, name: str = "job.json"):
        path = tmp_path / name
        path.write_text(json.dumps(doc))
        return path

    return _write


@pytest.fixture
def corner_job() -> dict:
    return {
        "joints": [
            {"name": "j1", "max_velocity": 1.0, "max_acceleration": 1.0},
            {"name": "j2", "max_velocity": 1.0, "max_acceleration": 1.0},
        ],
        "waypoints": [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0]],
    }
