"""Console and file logging.

Console output goes through rich; every message is also appended to
``app.log`` and ffmpeg chatter to ``render.log`` (both rotating). While a
job is rendering, its id prefixes each line so interleaved API and worker
output can be told apart.
"""

from __future__ import annotations

import logging
import os
from contextvars import ContextVar
from enum import Enum
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.theme import Theme

THEME = Theme({
    "info": "cyan",
    "warning": "yellow bold",
    "error": "red bold",
    "success": "green bold",
    "dim": "dim white",
})
console = Console(theme=THEME)
err_console = Console(stderr=True, theme=THEME)

LOG_DIR = Path(os.environ.get("MEMOREEL_LOG_DIR", "data/logs"))
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)-16s %(message)s"
LOG_MAX_BYTES = 20 * 1024 * 1024
LOG_BACKUPS = 5


class Verbosity(str, Enum):
    SILENT = "silent"
    NORMAL = "normal"
    VERBOSE = "verbose"


_verbosity = Verbosity.NORMAL
_app_log: logging.Logger | None = None
_render_log: logging.Logger | None = None

# ── Job id (one value per worker thread) ─────────────────────────────────────

_job_id: ContextVar[str] = ContextVar("job_id", default="")


def set_job_id(jid: str) -> None:
    """Tag subsequent log lines from this thread with ``jid`` ("" clears it)."""
    _job_id.set(jid)


def get_job_id() -> str:
    return _job_id.get()


def _ctx_prefix() -> str:
    jid = _job_id.get()
    return f"[job={jid}] " if jid else ""


class _JobFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        record.msg = f"{_ctx_prefix()}{record.msg}"
        return super().format(record)


def _file_logger(name: str, path: Path) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    handler.setFormatter(_JobFormatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    return logger


def setup_logging(verbosity: Verbosity = Verbosity.NORMAL, log_dir: Path | None = None) -> None:
    """Configure console verbosity and (re)open the log files under ``log_dir``.

    ``LOG_LEVEL`` in the environment overrides the level derived from verbosity.
    """
    global _verbosity, _app_log, _render_log
    _verbosity = verbosity

    level = logging.getLevelName(os.environ.get("LOG_LEVEL", "").upper())
    if not isinstance(level, int):
        level = {
            Verbosity.SILENT: logging.ERROR,
            Verbosity.NORMAL: logging.INFO,
            Verbosity.VERBOSE: logging.DEBUG,
        }[verbosity]
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, markup=True)],
        force=True,
    )

    target = log_dir or LOG_DIR
    _app_log = _file_logger("memoreel.app", target / "app.log")
    _render_log = _file_logger("memoreel.render", target / "render.log")


# ── Console helpers ──────────────────────────────────────────────────────────

def _emit(style: str, icon: str, level: int, msg: str, *, min_verbosity: Verbosity,
          out: Console | None = None, **kwargs: Any) -> None:
    shown = {
        Verbosity.SILENT: True,
        Verbosity.NORMAL: _verbosity != Verbosity.SILENT,
        Verbosity.VERBOSE: _verbosity == Verbosity.VERBOSE,
    }[min_verbosity]
    if shown:
        # literal text, never markup
        (out or console).print(f"[{style}]{icon} {escape(_ctx_prefix() + msg)}[/{style}]", **kwargs)
    if _app_log:
        _app_log.log(level, msg)


def info(msg: str, **kwargs: Any) -> None:
    _emit("info", "ℹ", logging.INFO, msg, min_verbosity=Verbosity.NORMAL, **kwargs)


def success(msg: str, **kwargs: Any) -> None:
    _emit("success", "✓", logging.INFO, msg, min_verbosity=Verbosity.NORMAL, **kwargs)


def warn(msg: str, **kwargs: Any) -> None:
    _emit("warning", "⚠", logging.WARNING, msg, min_verbosity=Verbosity.NORMAL, **kwargs)


def error(msg: str, **kwargs: Any) -> None:
    _emit("error", "✗", logging.ERROR, msg, min_verbosity=Verbosity.SILENT, out=err_console, **kwargs)


def debug(msg: str, **kwargs: Any) -> None:
    _emit("dim", " ", logging.DEBUG, msg, min_verbosity=Verbosity.VERBOSE, **kwargs)


def render_log(msg: str, level: str = "info") -> None:
    """ffmpeg commands, exit codes and stderr tails. Written regardless of verbosity."""
    rl = _render_log or logging.getLogger("memoreel.render")
    getattr(rl, level, rl.info)(msg)


def make_progress(**kwargs: Any) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        **kwargs,
    )
