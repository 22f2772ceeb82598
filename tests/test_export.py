"""
Tests for DataExportWriter and export bundles.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import json
import tempfile
from datetime import date
from pathlib import Path

import pytest

from prepmaster.export import (
    DataExportWriter,
    OutputReadError,
    build_bundle,
    export_filename,
)
from prepmaster.models import ExportBundle, OverallStats, Profile, SkillProgressRecord
from tests.mock_data import utc


def sample_bundle() -> ExportBundle:
    return build_bundle(
        Profile(id="user-1", email="a@example.com", full_name="Ada"),
        [
            SkillProgressRecord(
                user_id="user-1",
                skill_area="behavioral",
                current_score=82,
                achievements=["First STAR answer"],
            )
        ],
        OverallStats(total_sessions=3, average_score=81, hours_spent=2, streak_days=2, improvement_rate=4),
        export_date=utc(2026, 10, 19),
    )


class TestBundle:
    """Wire shape of the export bundle."""

    def test_wire_keys_are_camel_case(self) -> None:
        wire = sample_bundle().to_wire()

        assert set(wire) == {"profile", "skillProgress", "overallStats", "exportDate"}
        assert wire["overallStats"] == {
            "totalSessions": 3,
            "averageScore": 81,
            "hoursSpent": 2,
            "streakDays": 2,
            "improvementRate": 4,
        }
        assert wire["skillProgress"][0]["skillArea"] == "behavioral"
        assert wire["skillProgress"][0]["targetScore"] == 85
        assert wire["profile"]["fullName"] == "Ada"
        assert wire["exportDate"].startswith("2026-10-19")

    def test_export_date_defaults_to_now(self) -> None:
        bundle = build_bundle(None, [], OverallStats())

        assert bundle.profile is None
        assert bundle.export_date.tzinfo is not None

    def test_filename(self) -> None:
        assert export_filename(date(2026, 1, 5)) == "prepmaster-data-2026-01-05.json"
        assert export_filename(utc(2026, 10, 19)) == "prepmaster-data-2026-10-19.json"


class TestDataExportWriter:
    """File output of export bundles."""

    def test_write_and_load(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            writer = DataExportWriter(Path(tmpdir) / "exports")
            bundle = sample_bundle()

            path = writer.write_bundle(bundle)

            assert path.name == "prepmaster-data-2026-10-19.json"
            data = json.loads(path.read_text(encoding="utf-8"))
            assert data["skillProgress"][0]["achievements"] == ["First STAR answer"]
            assert writer.load_bundle(path) == bundle

    def test_same_day_export_is_overwritten(self, tmp_path: Path) -> None:
        writer = DataExportWriter(tmp_path)
        first = writer.write_bundle(sample_bundle())

        second = writer.write_bundle(sample_bundle().model_copy(update={"profile": None}))

        assert first == second
        assert writer.load_bundle(second).profile is None
        assert len(list(tmp_path.iterdir())) == 1

    def test_load_missing_file(self, tmp_path: Path) -> None:
        writer = DataExportWriter(tmp_path)

        with pytest.raises(OutputReadError) as exc_info:
            writer.load_bundle(tmp_path / "missing.json")

        assert exc_info.value.path == tmp_path / "missing.json"

    def test_load_invalid_json(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text("{ nope", encoding="utf-8")

        with pytest.raises(OutputReadError):
            DataExportWriter(tmp_path).load_bundle(bad)

    def test_load_schema_mismatch(self, tmp_path: Path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps({"overallStats": {"totalSessions": "many"}}), encoding="utf-8")

        with pytest.raises(OutputReadError):
            DataExportWriter(tmp_path).load_bundle(bad)
