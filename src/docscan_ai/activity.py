"""
Activity logging for docscan-ai.

Components log through a plain `(level, message, context)` callback. This
module builds callbacks that write those entries to the processing_log table
and optionally echo them to the console.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from rich.console import Console

from docscan_ai.database import Database

LogCallback = Callable[[str, str, dict[str, Any]], None]

_LEVEL_ORDER = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}

_LEVEL_STYLES = {
    "DEBUG": "dim",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
}


def make_log_callback(
    db: Database,
    stage: str,
    level: str = "INFO",
    console: Console | None = None,
) -> LogCallback:
    """
    Create a log callback bound to one stage name.

    Args:
        db: Database receiving the log entries.
        stage: Stage recorded with every entry (e.g. "orchestrator", "credentials").
        level: Minimum level to record.
        console: If given, entries are echoed to it as well.

    Returns:
        Callback accepting (level, message, context).
    """
    threshold = _LEVEL_ORDER.get(level.upper(), 20)

    def log(entry_level: str, message: str, context: dict[str, Any]) -> None:
        entry_level = entry_level.upper()
        if _LEVEL_ORDER.get(entry_level, 20) < threshold:
            return

        context = dict(context or {})
        document_id = context.pop("document_id", None)
        db.log(
            level=entry_level,
            stage=stage,
            message=message,
            document_id=document_id,
            context=context or None,
        )

        if console is not None:
            style = _LEVEL_STYLES.get(entry_level, "white")
            doc = f" doc={document_id}" if document_id is not None else ""
            console.print(
                f"[{style}]{entry_level:<7}[/{style}] [cyan]{stage}[/cyan]{doc} {message}",
                highlight=False,
            )

    return log
