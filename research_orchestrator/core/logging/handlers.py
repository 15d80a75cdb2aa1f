"""
Custom Log Handlers
==================

- DailyRotatingFileHandler: Rotates daily, one file per category
- SmartRoutingHandler: Routes every record to its category file
- ErrorMirrorFilter: Mirrors ERROR/CRITICAL to error/ directory

Directory Structure:
-------------------
logs/
├── app/            # Default application logs
├── error/          # ERROR + CRITICAL only
├── orchestration/  # Scheduler, message bus, event emitter
├── agents/         # Worker lifecycle and domain logs
└── database/       # Session manager and repositories

File naming: {category}_YYYY-MM-DD.log
"""

import logging
from datetime import datetime, timedelta
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Dict

from research_orchestrator.core.logging.formatters import FileFormatter, JsonFormatter


CATEGORIES = ["app", "error", "orchestration", "agents", "database"]

PACKAGE_PREFIX = "research_orchestrator."


def ensure_log_directories(log_dir: str) -> None:
    """Create all log category directories."""
    base_dir = Path(log_dir)
    for category in CATEGORIES:
        (base_dir / category).mkdir(parents=True, exist_ok=True)


def cleanup_old_logs(log_dir: str, retention_days: int = 7) -> int:
    """
    Remove log files older than retention_days.

    Returns:
        Number of files deleted
    """
    base_dir = Path(log_dir)
    cutoff_date = datetime.now() - timedelta(days=retention_days)
    deleted_count = 0

    for category in CATEGORIES:
        category_dir = base_dir / category
        if not category_dir.exists():
            continue

        for log_file in category_dir.glob("*.log"):
            # {category}_YYYY-MM-DD.log
            date_str = log_file.stem.split("_")[-1]
            try:
                file_date = datetime.strptime(date_str, "%Y-%m-%d")
            except ValueError:
                continue
            if file_date < cutoff_date:
                log_file.unlink()
                deleted_count += 1

    return deleted_count


class DailyRotatingFileHandler(TimedRotatingFileHandler):
    """
    Rotating file handler with date-stamped file names.

    Rotates at midnight; filename format is {category}_YYYY-MM-DD.log.
    """

    def __init__(
        self,
        category: str,
        log_dir: str,
        retention_days: int = 7,
        use_json: bool = False,
    ):
        self.category = category
        self.log_dir = log_dir
        self.retention_days = retention_days

        category_dir = Path(log_dir) / category
        category_dir.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y-%m-%d")

        super().__init__(
            filename=str(category_dir / f"{category}_{today}.log"),
            when="midnight",
            interval=1,
            backupCount=retention_days,
            encoding="utf-8",
            delay=True,
        )

        self.setFormatter(JsonFormatter() if use_json else FileFormatter())

    def doRollover(self):
        """Switch to a file named after the new day."""
        if self.stream:
            self.stream.close()
            self.stream = None

        today = datetime.now().strftime("%Y-%m-%d")
        self.baseFilename = str(Path(self.log_dir) / self.category / f"{self.category}_{today}.log")
        self.stream = self._open()
        self.rolloverAt = self.computeRollover(int(datetime.now().timestamp()))

        cleanup_old_logs(self.log_dir, self.retention_days)


class ErrorMirrorFilter(logging.Filter):
    """Filter that only allows ERROR and CRITICAL level logs."""

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= logging.ERROR


def create_error_handler(
    log_dir: str,
    use_json: bool = False,
    retention_days: int = 7,
) -> DailyRotatingFileHandler:
    """Create handler that mirrors ERROR/CRITICAL from all loggers."""
    handler = DailyRotatingFileHandler(
        category="error",
        log_dir=log_dir,
        retention_days=retention_days,
        use_json=use_json,
    )
    handler.setLevel(logging.ERROR)
    handler.addFilter(ErrorMirrorFilter())
    return handler


class SmartRoutingHandler(logging.Handler):
    """
    Routes log records to category files based on logger name.

    Added to the root logger, so any module using
    logging.getLogger(__name__) is routed without code changes.
    """

    ORCHESTRATION_KEYWORDS = ["orchestrat", "message_bus", "event_emitter", "control", "shared_state"]
    AGENT_KEYWORDS = ["agent", "worker", "registry"]
    DATABASE_KEYWORDS = ["database", "repository", "sqlalchemy", "session_manager"]

    def __init__(
        self,
        log_dir: str,
        use_json: bool = False,
        retention_days: int = 7,
        level: int = logging.DEBUG,
    ):
        super().__init__(level)
        self.log_dir = log_dir
        self.use_json = use_json
        self.retention_days = retention_days
        self._category_handlers: Dict[str, DailyRotatingFileHandler] = {}

    def _get_category_handler(self, category: str) -> DailyRotatingFileHandler:
        """Get or create handler for a category."""
        if category not in self._category_handlers:
            self._category_handlers[category] = DailyRotatingFileHandler(
                category=category,
                log_dir=self.log_dir,
                retention_days=self.retention_days,
                use_json=self.use_json,
            )
        return self._category_handlers[category]

    def _detect_category(self, logger_name: str) -> str:
        name_lower = logger_name.lower()
        # Every module lives under the package, whose name would match "orchestrat"
        if name_lower.startswith(PACKAGE_PREFIX):
            name_lower = name_lower[len(PACKAGE_PREFIX):]

        # Database first: repository modules live under research_orchestrator.database
        if any(kw in name_lower for kw in self.DATABASE_KEYWORDS):
            return "database"
        if any(kw in name_lower for kw in self.ORCHESTRATION_KEYWORDS):
            return "orchestration"
        if any(kw in name_lower for kw in self.AGENT_KEYWORDS):
            return "agents"
        return "app"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            handler = self._get_category_handler(self._detect_category(record.name))
            handler.emit(record)
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        for handler in self._category_handlers.values():
            handler.close()
        self._category_handlers.clear()
        super().close()
