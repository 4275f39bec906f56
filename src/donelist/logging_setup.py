# src/donelist/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the >>> prompt readable while the engine thread logs.

    donelist records pass, except that the archival scheduler and the task
    store (which log on every sweep and write) need WARNING. asyncio needs
    WARNING too; captured warnings and other libraries need ERROR.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name

        # Sweeps and writes happen in the background; only problems reach the prompt.
        if name.startswith("donelist."):
            if name.startswith(("donelist.tasks.task_scheduler", "donelist.tasks.task_store")):
                return record.levelno >= logging.WARNING
            return True

        if name == "py.warnings":
            return record.levelno >= logging.ERROR

        # asyncio reports un-retrieved task exceptions; those matter.
        if name == "asyncio":
            return record.levelno >= logging.WARNING

        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/donelist",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Route logs to stderr (filtered) and to <log_dir>/donelist.log (unfiltered).

    main() calls this before building AppState, so store migrations and the
    engine start-up land in the file too. Calling it again replaces the
    handlers rather than stacking them.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "donelist.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console (interactive)
    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    # File (everything)
    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    # warnings.warn() lands in donelist.log as py.warnings.
    logging.captureWarnings(True)
