"""Tests for the ridemetrics command line."""

import json

from click.testing import CliRunner

from ridemetrics.cli import main
from tests.conftest import NOW, days_ago, event, iso, user


def _write(path, payload):
    path.write_text(json.dumps(payload))
    return str(path)


def _activity_payload():
    return {
        "id": "ride-42",
        "sampleRateHz": 1,
        "samples": [{"t": i, "power": 200, "heartRate": 140, "cadence": 90} for i in range(120)],
    }


class TestDefinitions:
    def test_lists_registry(self):
        result = CliRunner().invoke(main, ["definitions"])
        assert result.exit_code == 0
        assert "normalized-power" in result.output
        assert "hcsr" in result.output
        assert "[bpm/rpm]" in result.output

    def test_config_file(self, tmp_path):
        config = tmp_path / "ridemetrics.toml"
        config.write_text("[hcsr]\nmin_bucket_seconds = 45\n")
        result = CliRunner().invoke(main, ["--config", str(config), "definitions"])
        assert result.exit_code == 0

    def test_bad_config_file(self, tmp_path):
        config = tmp_path / "ridemetrics.toml"
        config.write_text("[nope]\n")
        result = CliRunner().invoke(main, ["--config", str(config), "definitions"])
        assert result.exit_code != 0
        assert "unknown config section" in result.output


class TestCompute:
    def test_all_metrics(self, tmp_path):
        path = _write(tmp_path / "ride.json", _activity_payload())
        out = tmp_path / "out.json"
        result = CliRunner().invoke(main, ["compute", path, "-o", str(out)])
        assert result.exit_code == 0
        assert "Activity ride-42: 120 samples" in result.output
        payload = json.loads(out.read_text())
        assert payload["normalized-power"]["summary"]["normalized_power_w"] == 200.0
        assert set(payload) == {
            "hcsr",
            "interval-efficiency",
            "normalized-power",
            "stabilized-power",
            "late-aerobic-efficiency",
        }

    def test_selected_metric(self, tmp_path):
        path = _write(tmp_path / "ride.json", _activity_payload())
        result = CliRunner().invoke(main, ["compute", path, "-m", "stabilized-power"])
        assert result.exit_code == 0
        assert "stabilized-power" in result.output
        assert "normalized-power" not in result.output

    def test_unknown_metric(self, tmp_path):
        path = _write(tmp_path / "ride.json", _activity_payload())
        result = CliRunner().invoke(main, ["compute", path, "-m", "vo2max"])
        assert result.exit_code != 0
        assert "Unknown metric key: vo2max" in result.output

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "ride.json"
        path.write_text("{not json")
        result = CliRunner().invoke(main, ["compute", str(path)])
        assert result.exit_code != 0
        assert "invalid JSON" in result.output

    def test_non_object(self, tmp_path):
        path = _write(tmp_path / "ride.json", [1, 2, 3])
        result = CliRunner().invoke(main, ["compute", path])
        assert result.exit_code != 0
        assert "expected a JSON object" in result.output


class TestOverview:
    def _batch(self):
        return {
            "users": [user("u1", days_ago(2))],
            "events": [event("upload", days_ago(1), "u1", success=True, durationMs=500)],
        }

    def test_prints_json(self, tmp_path):
        path = _write(tmp_path / "batch.json", self._batch())
        result = CliRunner().invoke(main, ["overview", path, "--now", iso(NOW)])
        assert result.exit_code == 0
        overview = json.loads(result.stdout)
        assert overview["generatedAt"] == "2024-06-12T12:00:00.000Z"
        assert overview["acquisition"]["signupToFirstUpload"]["totalSignups"] == 1

    def test_writes_file(self, tmp_path):
        path = _write(tmp_path / "batch.json", self._batch())
        out = tmp_path / "overview.json"
        result = CliRunner().invoke(main, ["overview", path, "--now", iso(NOW), "-o", str(out)])
        assert result.exit_code == 0
        assert "Overview written to" in result.output
        assert "usage" in json.loads(out.read_text())

    def test_bad_now(self, tmp_path):
        path = _write(tmp_path / "batch.json", self._batch())
        result = CliRunner().invoke(main, ["overview", path, "--now", "soon"])
        assert result.exit_code != 0
