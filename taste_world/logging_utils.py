"""
Logging utilities for the taste world service.

Entrypoints (api/main.py, main_app.py) call configure_logging() once at
startup. Jobs bind their job id as the run_id so concurrent builds and
generations can be told apart in one log stream.
"""
import contextvars
import logging
import sys
import os
import re
import time
from pathlib import Path
from contextlib import contextmanager
from typing import Dict, Optional, Any, List, Union

_logging_configured = False
_run_id: contextvars.ContextVar = contextvars.ContextVar("taste_world_run_id", default=None)
_HANDLER_TAG = "_tw_handler"
_CONSOLE_FMT = '%(asctime)s | %(levelname)-5s | %(name)s | %(message)s'
_CONSOLE_FMT_WITH_RUN_ID = '%(asctime)s | %(levelname)-5s | %(name)s | run_id=%(run_id)s | %(message)s'
_FILE_FMT = '%(asctime)s | %(levelname)-5s | %(threadName)s | %(name)s:%(lineno)d | run_id=%(run_id)s | %(message)s'

_NOISY_LOGGERS = ('urllib3', 'requests', 'httpx', 'httpcore', 'openai', 'uvicorn.access')

# (pattern, replacement) applied to every redacted value
_SECRET_PATTERNS = [
    (r'(["\']?(?:api[_-]?key|access[_-]?token|refresh[_-]?token|token|client[_-]?secret|secret|password)["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)(["\']?)',
     r'\1***REDACTED***\3'),
    (r'(Bearer\s+)[A-Za-z0-9._\-]+', r'\1***REDACTED***'),
    (r'sk-[A-Za-z0-9_\-]{8,}', r'sk-***REDACTED***'),
    (r'[\w.+-]+@[\w.-]+\.\w+', r'***@***.***'),
]


class RunIdFilter(logging.Filter):
    """Inject run_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _run_id.get() or "-"
        return True


def get_run_id() -> Optional[str]:
    return _run_id.get()


@contextmanager
def bind_run_id(run_id: Optional[str]):
    """Bind a run_id (a job id) for the enclosed block in the current context."""
    token = _run_id.set(run_id)
    try:
        yield
    finally:
        _run_id.reset(token)


def configure_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    file_level: str = 'DEBUG',
    force: bool = False,
    console: bool = True,
    show_run_id: bool = False,
) -> None:
    """
    Configure root logging for the service.

    Subsequent calls are ignored unless force=True. LOG_LEVEL and LOG_FILE
    environment variables override the arguments.

    Args:
        level: Console log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path to log file (always includes run_id)
        file_level: Log level for file output
        force: Reconfigure even if already configured
        console: Whether to add a console handler
        show_run_id: Include run_id in console output (implied by DEBUG)
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    level = os.getenv('LOG_LEVEL', level).upper()
    if log_file is None:
        log_file = os.getenv('LOG_FILE')

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Only our own tagged handlers are replaced; uvicorn/pytest handlers stay
    for handler in root.handlers[:]:
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, level, logging.INFO))
        fmt = _CONSOLE_FMT_WITH_RUN_ID if (show_run_id or level == "DEBUG") else _CONSOLE_FMT
        console_handler.setFormatter(logging.Formatter(fmt, datefmt='%H:%M:%S'))
        _install(root, console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(getattr(logging, file_level, logging.DEBUG))
        file_handler.setFormatter(logging.Formatter(_FILE_FMT, datefmt='%Y-%m-%d %H:%M:%S'))
        _install(root, file_handler)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    _logging_configured = True
    logging.getLogger(__name__).debug(f"Logging configured: level={level}, file={log_file or 'none'}")


def _install(root: logging.Logger, handler: logging.Handler) -> None:
    handler.addFilter(RunIdFilter())
    setattr(handler, _HANDLER_TAG, True)
    root.addHandler(handler)


def _format_elapsed(seconds: float) -> str:
    if seconds < 1:
        return f"{seconds * 1000:.0f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    return f"{int(seconds // 60)}m {seconds % 60:.0f}s"


@contextmanager
def stage_timer(
    stage_name: str,
    logger: Optional[logging.Logger] = None,
    summary: Optional["RunSummary"] = None,
):
    """
    Time one pipeline stage.

    Logs the duration at INFO when the block exits (also on error) and,
    when given a RunSummary, records it there as a stage timing.

    Usage:
        with stage_timer("Candidate harvest", logger, summary):
            tracks = harvester.collect(world)
    """
    logger = logger or logging.getLogger(__name__)
    logger.debug(f"{stage_name} starting...")
    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed = time.perf_counter() - start
        logger.info(f"{stage_name} completed in {_format_elapsed(elapsed)}")
        if summary is not None:
            summary.add_stage(stage_name, elapsed)


def redact(value: Any, keys: Optional[List[str]] = None) -> str:
    """
    Scrub credentials and e-mail addresses from a value before it is logged
    or persisted in a job record.

    ``keys`` adds extra ``key=value`` / ``"key": value`` names to hide.
    """
    if value is None:
        return "None"

    text = str(value)
    for pattern, replacement in _SECRET_PATTERNS:
        text = re.sub(pattern, replacement, text, flags=re.IGNORECASE)

    for key in keys or ():
        text = re.sub(
            rf'(["\']?{re.escape(key)}["\']?\s*[:=]\s*["\']?)([^"\'\s,}}]+)(["\']?)',
            r'\1***REDACTED***\3',
            text,
            flags=re.IGNORECASE,
        )
    return text


def format_count(n: int, singular: str, plural: Optional[str] = None) -> str:
    """"1 track" / "1,200 tracks"."""
    if plural is None:
        plural = singular + 's'
    return f"{n:,} {singular if n == 1 else plural}"


def truncate_list(items: List[Any], max_items: int = 3, format_fn=str) -> str:
    """"shoegaze, slowcore, dream pop (+5 more)"."""
    if not items:
        return "(none)"
    result = ', '.join(format_fn(item) for item in items[:max_items])
    if len(items) > max_items:
        result += f" (+{len(items) - max_items} more)"
    return result


def add_logging_args(parser) -> None:
    """Add --log-level/--debug/--quiet/--log-file/--show-run-id to an argparse parser."""
    group = parser.add_argument_group('logging')
    group.add_argument(
        '--log-level',
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
        default='INFO',
        help='Set logging level (default: INFO)'
    )
    group.add_argument('--debug', action='store_true', help='Shortcut for --log-level DEBUG')
    group.add_argument('--quiet', action='store_true', help='Shortcut for --log-level WARNING')
    group.add_argument('--log-file', type=str, metavar='PATH', help='Write logs to file')
    group.add_argument(
        '--show-run-id',
        action='store_true',
        help='Include run_id (job id) in console logs (always included in file logs)',
    )


def resolve_log_level(args) -> str:
    """Priority: --debug > --quiet > --log-level"""
    if getattr(args, 'debug', False):
        return 'DEBUG'
    if getattr(args, 'quiet', False):
        return 'WARNING'
    return getattr(args, 'log_level', 'INFO')


class RunSummary:
    """
    Per-job counters and stage timings, logged as one block when the job ends.

    ``metrics`` doubles as the job's stats record, so only counters and
    labels go there; stage durations are kept apart in ``stages``.
    """

    def __init__(self, title: str, logger: Optional[logging.Logger] = None):
        self.title = title
        self.logger = logger or logging.getLogger(__name__)
        self.metrics: Dict[str, Union[int, float, str]] = {}
        self.stages: Dict[str, float] = {}
        self.start_time = time.perf_counter()

    def add(self, key: str, value: Union[int, float, str]) -> None:
        self.metrics[key] = value

    def add_stage(self, name: str, seconds: float) -> None:
        self.stages[name] = self.stages.get(name, 0.0) + seconds

    def log(self, level: int = logging.INFO) -> None:
        elapsed = time.perf_counter() - self.start_time

        self.logger.log(level, "=" * 60)
        self.logger.log(level, f"{self.title.upper()} SUMMARY")
        for key, value in self.metrics.items():
            display_key = key.replace('_', ' ').title()
            if isinstance(value, float):
                self.logger.log(level, f"  {display_key}: {value:.2f}")
            else:
                self.logger.log(level, f"  {display_key}: {value}")
        if self.stages:
            stages = ", ".join(f"{name} {_format_elapsed(s)}" for name, s in self.stages.items())
            self.logger.log(level, f"  Stages: {stages}")
        self.logger.log(level, f"  Total Time: {_format_elapsed(elapsed)}")
        self.logger.log(level, "=" * 60)
