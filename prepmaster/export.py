"""
Data Export Writer.

Builds the user data export bundle ({profile, skillProgress, overallStats,
exportDate}) and persists it as JSON files named
prepmaster-data-YYYY-MM-DD.json.

Thread Safety:
    Writes replace whole files; concurrent writers for the same date need
    external locking.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .models import ExportBundle, OverallStats, Profile, SkillProgressRecord, utc_now


__all__ = [
    "DataExportWriter",
    "OutputWriteError",
    "OutputReadError",
    "build_bundle",
    "export_filename",
]


logger = logging.getLogger(__name__)


class OutputWriteError(Exception):
    """Raised when writing an export file fails."""

    error_code = "EXPORT_WRITE_FAILED"

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to write to {path}: {cause}")


class OutputReadError(Exception):
    """Raised when reading an export file fails."""

    error_code = "EXPORT_READ_FAILED"

    def __init__(self, path: Path, cause: Exception) -> None:
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to read from {path}: {cause}")


def export_filename(export_date: date | datetime) -> str:
    return f"prepmaster-data-{export_date.strftime('%Y-%m-%d')}.json"


def build_bundle(
    profile: Optional[Profile],
    skill_progress: list[SkillProgressRecord],
    overall_stats: OverallStats,
    export_date: Optional[datetime] = None,
) -> ExportBundle:
    return ExportBundle(
        profile=profile,
        skill_progress=list(skill_progress),
        overall_stats=overall_stats,
        export_date=export_date or utc_now(),
    )


class DataExportWriter:
    """
    Writes and reads export bundles in a directory.

    Example:
        >>> writer = DataExportWriter(Path("./exports"))
        >>> path = writer.write_bundle(bundle)
        >>> writer.load_bundle(path) == bundle
        True
    """

    def __init__(self, output_dir: Path) -> None:
        """
        Args:
            output_dir: Directory for export files. Created if it doesn't exist.
        """
        self.output_dir = Path(output_dir)
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            logger.debug("Export directory ready: %s", self.output_dir)
        except OSError as e:
            raise OutputWriteError(self.output_dir, e) from e

    @staticmethod
    def to_json(bundle: ExportBundle) -> str:
        return json.dumps(bundle.to_wire(), indent=2, ensure_ascii=False)

    def write_bundle(self, bundle: ExportBundle) -> Path:
        """
        Write a bundle to prepmaster-data-<export date>.json.

        Overwrites an existing export from the same day.

        Raises:
            OutputWriteError: If the file write fails.
        """
        output_path = self.output_dir / export_filename(bundle.export_date)
        try:
            with open(output_path, "w", encoding="utf-8") as f:
                f.write(self.to_json(bundle))
        except OSError as e:
            raise OutputWriteError(output_path, e) from e

        logger.info("Wrote data export to %s", output_path)
        return output_path

    def load_bundle(self, path: Path) -> ExportBundle:
        """
        Load a previously written bundle.

        Raises:
            OutputReadError: Missing file, invalid JSON or schema mismatch.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise OutputReadError(path, e) from e
        except OSError as e:
            raise OutputReadError(path, e) from e

        try:
            return ExportBundle.model_validate(data)
        except ValidationError as e:
            raise OutputReadError(path, e) from e
