"""JSON log lines for budget materialization and reconciliation"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from household_budget.config import settings

budget_logger = logging.getLogger("household_budget.budgets")
reconciliation_logger = logging.getLogger("household_budget.reconciliation")


class BudgetJsonFormatter(jsonlogger.JsonFormatter):
    """Stamps every record with UTC time, level name and service name"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record.update(
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            level=record.levelname,
            service=settings.service_name,
        )


def setup_logging(level: str = "INFO") -> None:
    """Send JSON lines to stdout from the root logger, replacing prior handlers"""
    stdout = logging.StreamHandler(sys.stdout)
    stdout.setFormatter(BudgetJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.handlers[:] = [stdout]
    root.setLevel(level)


def log_reconciliation(step: str, budget_id: str, request_id: str | None = None, **counts: int) -> None:
    reconciliation_logger.info(
        "Reconciliation step completed",
        extra={"step": step, "budget_id": budget_id, "request_id": request_id, **counts},
    )


def log_materialization(main_budget_id: str, week_number: int, weekly_budget_id: str, created: bool) -> None:
    # "existing" means another caller (or an earlier call) already owned the slot
    budget_logger.info(
        "Week slot materialized",
        extra={
            "main_budget_id": main_budget_id,
            "week_number": week_number,
            "weekly_budget_id": weekly_budget_id,
            "outcome": "created" if created else "existing",
        },
    )
