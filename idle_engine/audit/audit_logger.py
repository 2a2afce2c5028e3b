"""
Audit Logging Module.

This module provides a JSONL event sink that persists the event stream of
every run for compliance review.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError

from ..engine.events import EventSink
from ..models import Event

logger = logging.getLogger(__name__)


class AuditLogger(EventSink):
    """
    Event sink writing one JSON line per event.

    Events are appended to a daily file (``events_YYYY-MM-DD.jsonl``). Event
    data is already redacted by the engine before it reaches the sink.
    """

    def __init__(self, audit_dir: Union[str, Path] = "audit_logs"):
        """
        Initialize the audit logger.

        Args:
            audit_dir: Directory to store audit logs
        """
        self.audit_dir = Path(audit_dir)
        self.audit_dir.mkdir(parents=True, exist_ok=True)

    def write_event(self, event: Event) -> None:
        """Append an event to today's log file."""
        date_str = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        log_file = self.audit_dir / f"events_{date_str}.jsonl"

        with open(log_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(event.model_dump(mode="json"), sort_keys=True) + "\n")

        logger.debug(f"Logged event {event.name} for run {event.correlation_id}")

    def get_events(
        self,
        correlation_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[Event]:
        """
        Retrieve logged events in the order they were written.

        Args:
            correlation_id: Only events of this run
            start_date: Filter by start date
            end_date: Filter by end date
            limit: Maximum number of events to return

        Returns:
            List of matching events
        """
        results: List[Event] = []

        for log_file in sorted(self.audit_dir.glob("events_*.jsonl")):
            with open(log_file, encoding="utf-8") as f:
                for line_number, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        event = Event.model_validate(json.loads(line))
                    except (json.JSONDecodeError, ValidationError) as e:
                        logger.warning(f"Skipping unreadable audit line {log_file}:{line_number}: {e}")
                        continue

                    if correlation_id and event.correlation_id != correlation_id:
                        continue
                    if start_date and event.timestamp_utc < start_date:
                        continue
                    if end_date and event.timestamp_utc > end_date:
                        continue

                    results.append(event)
                    if len(results) >= limit:
                        return results

        return results
