import logging
import re
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

import pandas as pd
from pydantic import ValidationError

from . import settings
from . import utils
from .errors import PersistenceError
from .schemas import Discrepancy, Report

logger = logging.getLogger(__name__)

REPORT_ID_PATTERN = re.compile(r"[0-9a-f]{32}")


class ReportStore(ABC):
    """Where finished reports live. The engine only ever calls `save`."""

    @abstractmethod
    def save(self, report: Report) -> Report:
        """Persists the report and returns it with its storage id set."""

    @abstractmethod
    def list_recent(self, limit: int = 30) -> list[Report]:
        """Newest first."""

    @abstractmethod
    def get(self, report_id: str) -> Report | None:
        pass

    @abstractmethod
    def delete(self, report_id: str) -> bool:
        """True if a report was removed, False if there was nothing to remove."""

    def get_latest(self) -> Report | None:
        recent = self.list_recent(limit=1)
        return recent[0] if recent else None


class JsonReportStore(ReportStore):
    """
    One JSON document per report under `reports_dir`, named after its id.
    Documents use the camelCase field names the dashboard reads.
    """

    def __init__(self, reports_dir: Path | None = None):
        self.reports_dir = Path(reports_dir or settings.REPORTS_DIR)

    def _path_for(self, report_id: str) -> Path | None:
        # ids are uuid4 hex; anything else could point outside reports_dir
        if not isinstance(report_id, str) or not REPORT_ID_PATTERN.fullmatch(report_id):
            logger.warning(f"⚠️ Ignoring invalid report id {report_id!r}")
            return None
        return self.reports_dir / f"{report_id}.json"

    def save(self, report: Report) -> Report:
        stored = report.model_copy(update={"id": report.id or uuid.uuid4().hex})
        path = self._path_for(stored.id)
        if path is None:
            raise PersistenceError(f"Invalid report id {stored.id!r}", report=report)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(stored.model_dump_json(by_alias=True, indent=2), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            raise PersistenceError(f"Could not write report to {path}: {e}", report=report) from e

        logger.info(f"✅ Report {stored.id} saved to: {path}")
        return stored

    def _load(self, path: Path) -> Report | None:
        try:
            return Report.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"⚠️ Skipping unreadable report {path.name}: {e}")
            return None

    def list_recent(self, limit: int = 30) -> list[Report]:
        if not self.reports_dir.exists():
            return []
        reports = [r for r in map(self._load, self.reports_dir.glob("*.json")) if r is not None]
        reports.sort(key=lambda r: r.created_at, reverse=True)
        return reports[:limit]

    def get(self, report_id: str) -> Report | None:
        path = self._path_for(report_id)
        if path is None or not path.exists():
            return None
        return self._load(path)

    def delete(self, report_id: str) -> bool:
        path = self._path_for(report_id)
        if path is None or not path.exists():
            return False
        path.unlink()
        logger.info(f"🗑️ Report {report_id} deleted.")
        return True


def discrepancies_frame(report: Report) -> pd.DataFrame:
    """The report's discrepancy rows as a DataFrame, with the dashboard's column names."""
    columns = [field.alias or name for name, field in Discrepancy.model_fields.items()]
    rows = [d.model_dump(by_alias=True) for d in report.discrepancies]
    return pd.DataFrame(rows, columns=columns)


def export_csv(report: Report, output_dir: Path | None = None) -> Path:
    """Saves the discrepancy list to a dated CSV and returns its path."""
    output_dir = Path(output_dir or settings.EXPORT_DIR)
    output_dir.mkdir(parents=True, exist_ok=True)
    date_suffix = utils.get_date_suffix_for_filename(report.date)
    suffix = f"_{report.id}" if report.id else ""

    csv_path = output_dir / f"inventory_discrepancies_{date_suffix}{suffix}.csv"
    discrepancies_frame(report).to_csv(csv_path, index=False)
    logger.info(f"✅ Discrepancy report saved to: {csv_path}")
    return csv_path
