"""
Logging Configuration Module.

Builds the application logger used across the provisioning pipeline.
Structured log calls pass a dict as the message; those records are rendered
as single-line JSON so every field stays searchable.

Features:
- Console output for interactive runs
- Rotating file output under the configured log directory
- JSON rendering for dict messages
"""

import json
import logging
import os
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler


class StructuredFormatter(logging.Formatter):
    """Render dict messages as JSON lines, plain messages as text."""

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            payload = {
                "timestamp": datetime.fromtimestamp(
                    record.created, timezone.utc
                ).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                **record.msg,
            }
            if record.exc_info:
                payload["exception"] = self.formatException(record.exc_info)
            return json.dumps(payload, default=str)
        return super().format(record)


class LogManager:
    """
    Configures and owns the application logger.

    Attributes:
        logger (logging.Logger): Configured logger instance
    """

    def __init__(
        self,
        app_name: str,
        log_dir: str = "logs",
        development: bool = False,
        level: int = logging.INFO,
        max_bytes: int = 5 * 1024 * 1024,
        backup_count: int = 3,
    ):
        """
        Initialize logging handlers.

        Args:
            app_name (str): Logger name, also used for the log file name
            log_dir (str): Directory for log files
            development (bool): Also log to the console when True
            level (int): Logging level
            max_bytes (int): Size threshold for log rotation
            backup_count (int): Number of rotated files to keep
        """
        self.logger = logging.getLogger(app_name)
        self.logger.setLevel(level)
        self.logger.propagate = False

        # Handlers are attached once per process
        if self.logger.handlers:
            return

        formatter = StructuredFormatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, f"{app_name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        self.logger.addHandler(file_handler)

        if development:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(formatter)
            self.logger.addHandler(console_handler)
