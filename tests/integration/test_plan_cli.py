"""
Integration tests for the totg-plan command.

Runs the CLI end to end on JSON jobs: decode, time-parameterize, encode.
"""

import io
import json
import subprocess
import sys

import numpy as np
import pytest

from totg.cli.plan import main


@pytest.mark.integration
class TestPlanCommand:
    """Successful planning runs."""

    def test_writes_result_file(self, write_job, corner_job, tmp_path):
        out = tmp_path / "result.json"
        assert main([str(write_job(corner_job)), "-o", str(out)]) == 0

        result = json.loads(out.read_text())
        assert result["joint_names"] == ["j1", "j2"]
        times = np.array(result["time_from_start"])
        assert times[0] == 0.0
        assert np.all(np.diff(times) > 0.0)
        assert result["duration"] == pytest.approx(times[-1])
        np.testing.assert_allclose(result["positions"][0], [0.0, 0.0], atol=1e-9)
        np.testing.assert_allclose(result["positions"][-1], [1.0, 1.0], atol=1e-9)
        assert len(result["velocities"]) == len(times)

    def test_out_and_back_job(self, write_job, corner_job, tmp_path):
        corner_job["waypoints"] = [[0.0, 0.0], [1.0, 1.0], [0.0, 0.0]]
        out = tmp_path / "result.json"
        assert main([str(write_job(corner_job)), "-o", str(out)]) == 0

        result = json.loads(out.read_text())
        assert result["duration"] == pytest.approx(4.0, rel=1e-2)
        np.testing.assert_allclose(result["positions"][-1], [0.0, 0.0], atol=1e-9)

    def test_waypoint_count_job(self, write_job, corner_job, tmp_path):
        corner_job["num_waypoints"] = 20
        out = tmp_path / "result.json"
        assert main([str(write_job(corner_job)), "-o", str(out)]) == 0
        assert abs(len(json.loads(out.read_text())["positions"]) - 20) <= 1

    def test_joint_limit_records_apply(self, write_job, corner_job, tmp_path):
        out_default = tmp_path / "default.json"
        out_slow = tmp_path / "slow.json"
        assert main([str(write_job(corner_job)), "-o", str(out_default)]) == 0
        corner_job["joint_limits"] = [
            {"joint_name": "j1", "has_velocity_limits": True, "max_velocity": 0.2},
            {"joint_name": "j2", "has_velocity_limits": True, "max_velocity": 0.2},
        ]
        assert main([str(write_job(corner_job, "slow.json")), "-o", str(out_slow)]) == 0

        default = json.loads(out_default.read_text())
        slow = json.loads(out_slow.read_text())
        assert slow["duration"] > default["duration"]

    def test_reads_stdin_writes_stdout(self, corner_job, monkeypatch, capsysbinary):
        data = json.dumps(corner_job).encode()
        monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(data)))
        assert main(["-", "-q"]) == 0

        result = json.loads(capsysbinary.readouterr().out)
        assert result["joint_names"] == ["j1", "j2"]

    def test_module_entry_point(self, write_job, corner_job, tmp_path):
        out = tmp_path / "result.json"
        proc = subprocess.run(
            [sys.executable, "-m", "totg.cli.plan", str(write_job(corner_job)), "-o", str(out)],
            capture_output=True,
            timeout=300,
        )
        assert proc.returncode == 0, proc.stderr.decode()
        assert proc.stdout == b""
        assert json.loads(out.read_text())["duration"] > 0.0


@pytest.mark.integration
class TestPlanCommandFailures:
    """Exit status reports why a job was not planned."""

    def test_missing_job_file(self, tmp_path):
        assert main([str(tmp_path / "absent.json")]) == 1

    def test_malformed_job(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json")
        assert main([str(path)]) == 1

    def test_invalid_job(self, write_job, corner_job):
        corner_job["waypoints"] = [[0.0, 0.0], [1.0]]
        assert main([str(write_job(corner_job))]) == 1

    def test_missing_limits_fail_planning(self, write_job, corner_job, tmp_path):
        del corner_job["joints"][1]["max_velocity"]
        out = tmp_path / "result.json"
        assert main([str(write_job(corner_job)), "-o", str(out)]) == 2
        assert not out.exists()

    def test_mixed_joint_types_fail_planning(self, write_job, corner_job):
        corner_job["joints"][1]["kind"] = "prismatic"
        assert main([str(write_job(corner_job))]) == 2
