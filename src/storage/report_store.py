"""
Provisioning Report Storage Module.

This module handles the persistent storage and retrieval of provisioning
reports. Every run appends a snapshot so the history of a scenario or
assessment repository (built, partially built, failed) can be inspected.
"""

import json
import os
from pathlib import Path
from typing import List, Optional

from config import logger
from builders.policy import ProvisioningReport


class ReportStore:
    """
    Manages persistent storage of provisioning reports.
    Handles both saving and loading of historical run outcomes.
    """

    def __init__(self, data_dir: str):
        """Initialize the report storage system.

        Args:
            data_dir (str): Base directory path for storing reports.
        """
        self.storage_dir = Path(data_dir)
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _get_report_file_path(self, run_name: str) -> str:
        """Generate the file path for a run's reports.

        Args:
            run_name (str): Repository or run name.

        Returns:
            str: Complete file path for storing reports.
        """
        # Convert run name to safe filename
        safe_name = run_name.replace("/", "_").replace("\\", "_")
        return os.path.join(self.storage_dir, f"{safe_name}_provisioning.json")

    def _read(self, file_path: str) -> List[dict]:
        if not os.path.exists(file_path):
            return []
        with open(file_path, "r") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError:
                # Handle corrupted file by starting fresh
                logger.error(
                    {"message": "Corrupted provisioning report file", "file": file_path}
                )
                return []
        return data if isinstance(data, list) else [data]

    def store_report(self, report: ProvisioningReport) -> None:
        """Append a report to the run's history.

        Args:
            report (ProvisioningReport): Outcome of a provisioning run.

        Raises:
            OSError: If the report cannot be written.
        """
        file_path = self._get_report_file_path(report.run_id)
        try:
            existing_data = self._read(file_path)
            existing_data.append(report.model_dump(mode="json"))

            with open(file_path, "w") as f:
                json.dump(existing_data, f, indent=2)

            logger.info(
                {
                    "message": "Stored provisioning report",
                    "run_id": report.run_id,
                    "status": report.status.value,
                    "omissions": len(report.omissions),
                    "file_path": file_path,
                }
            )
        except OSError as e:
            logger.error(
                {
                    "message": "Failed to store provisioning report",
                    "run_id": report.run_id,
                    "error": str(e),
                }
            )
            raise

    def load_reports(
        self, run_name: str, limit: Optional[int] = None
    ) -> List[ProvisioningReport]:
        """Retrieve a run's reports, newest first.

        Args:
            run_name (str): Scenario or assessment id.
            limit (Optional[int]): Maximum number of reports to return.

        Returns:
            List[ProvisioningReport]: Stored reports, empty if none.
        """
        reports = [
            ProvisioningReport.model_validate(item)
            for item in self._read(self._get_report_file_path(run_name))
        ]
        reports.sort(key=lambda report: report.started_at, reverse=True)
        if limit:
            reports = reports[:limit]
        return reports
