"""Per-project operation log.

Each line has the form ``[<ISO timestamp>] <message>`` and is appended to
``<project>/logs/<YYYY-MM-DD>.log``.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .project import LOGS_DIR
from .utils import utc_now_iso

logger = logging.getLogger(__name__)


def create_log_line(message: str, timestamp: Optional[str] = None) -> str:
    return f"[{timestamp or utc_now_iso()}] {message}"


def append_project_log(project_path: Path, message: str) -> Path:
    """Append a message to today's log file of a project.

    Args:
        project_path: Project directory
        message: Message to log (one line per message line)

    Returns:
        Path of the log file
    """
    logs_path = Path(project_path) / LOGS_DIR
    logs_path.mkdir(parents=True, exist_ok=True)
    log_file = logs_path / f"{datetime.now(timezone.utc):%Y-%m-%d}.log"

    timestamp = utc_now_iso()
    lines = [
        create_log_line(line, timestamp) for line in message.splitlines() if line
    ]
    with open(log_file, "a", encoding="utf-8") as f:
        for line in lines:
            f.write(f"{line}\n")
    logger.debug(f"Appended {len(lines)} line(s) to {log_file}")
    return log_file


def read_recent_logs(project_path: Path, max_lines: int = 80) -> list[str]:
    """Return the last lines of the newest log file of a project."""
    logs_path = Path(project_path) / LOGS_DIR
    if not logs_path.is_dir():
        return []

    log_files = sorted(
        (p for p in logs_path.iterdir() if p.is_file() and p.suffix == ".log"),
        key=lambda p: p.name,
        reverse=True,
    )
    if not log_files:
        return []

    try:
        text = log_files[0].read_text(encoding="utf-8")
    except OSError as e:
        logger.warning(f"Failed to read log file {log_files[0]}: {e}")
        return []

    lines = [line for line in text.splitlines() if line]
    return lines[-max_lines:]
