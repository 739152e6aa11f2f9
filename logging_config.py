"""Centralized logging configuration with optional Supabase log shipping.

This module provides:
- JSONFormatter for structured logging
- SecretRedactionFilter so configured secrets never reach a handler
- SupabaseHandler for centralized log collection (batched)
- Fallback to stderr-only when Supabase is unavailable
"""

import atexit
import logging
import re
import sys
import threading
import time
from queue import Queue, Empty
from typing import Iterable, Optional


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def __init__(self, service_name: str = None):
        super().__init__()
        self.service_name = service_name or "support-oauth"

    def format(self, record: logging.LogRecord) -> dict:
        # Extract tag from message if present: [TAG] message
        tag = None
        message = record.getMessage()
        tag_match = re.match(r'\[([A-Z_]+)\]\s*(.*)', message)
        if tag_match:
            tag = tag_match.group(1)
            message = tag_match.group(2)

        log_entry = {
            "service": self.service_name,
            "level": record.levelname,
            "tag": tag,
            "message": message,
            "module": record.module,
            "extra": {
                "function": record.funcName,
                "line": record.lineno,
            }
        }

        if record.exc_info:
            log_entry["extra"]["exception"] = self.formatException(record.exc_info)

        return log_entry


class PlainFormatter(logging.Formatter):
    """Plain text formatter for stderr output."""

    def __init__(self):
        super().__init__(
            fmt='%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )


class SecretRedactionFilter(logging.Filter):
    """Mask configured secret values in log records."""

    MASK = "***"

    def __init__(self, secrets: Iterable[str] = ()):
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        redacted = message
        for secret in self.secrets:
            redacted = redacted.replace(secret, self.MASK)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class SupabaseHandler(logging.Handler):
    """Logging handler that batches logs and sends to Supabase.

    Logs are buffered and sent in batches to reduce database writes.
    Flush occurs every flush_interval seconds or when batch_size is reached.
    """

    def __init__(
        self,
        supabase_client,
        service_name: str,
        table: str = "logs",
        batch_size: int = 20,
        flush_interval: float = 10.0,
        start_worker: bool = True,
    ):
        super().__init__()
        self.supabase = supabase_client
        self.service_name = service_name
        self.table = table
        self.batch_size = batch_size
        self.flush_interval = flush_interval

        self._queue: Queue = Queue()
        self._shutdown = threading.Event()
        if start_worker:
            self._flush_thread = threading.Thread(target=self._flush_worker, daemon=True)
            self._flush_thread.start()

        atexit.register(self.close)

    def emit(self, record: logging.LogRecord):
        """Queue a log record for batched sending."""
        try:
            if isinstance(self.formatter, JSONFormatter):
                log_entry = self.formatter.format(record)
            else:
                log_entry = {
                    "service": self.service_name,
                    "level": record.levelname,
                    "tag": None,
                    "message": record.getMessage(),
                    "module": record.module,
                    "extra": {}
                }

            self._queue.put(log_entry)

            if self._queue.qsize() >= self.batch_size:
                self.flush()

        except Exception:
            self.handleError(record)

    def _flush_worker(self):
        """Background thread that flushes logs periodically."""
        while not self._shutdown.is_set():
            time.sleep(self.flush_interval)
            if not self._queue.empty():
                self.flush()

    def flush(self):
        """Send queued logs to Supabase."""
        logs = []
        try:
            while len(logs) < self.batch_size * 2:  # Don't flush too many at once
                try:
                    logs.append(self._queue.get_nowait())
                except Empty:
                    break

            if logs and self.supabase:
                self.supabase.table(self.table).insert(logs).execute()

        except Exception as e:
            # Report on stderr directly to avoid recursing into logging
            print(f"[WARNING] Failed to send logs to Supabase: {e}", file=sys.stderr)

    def close(self):
        """Flush remaining logs and stop the background thread."""
        self._shutdown.set()
        self.flush()
        super().close()


_supabase_handler: Optional[SupabaseHandler] = None


def setup_logging(
    service_name: str = None,
    supabase_client=None,
    secrets: Iterable[str] = (),
    level: int = logging.INFO,
) -> logging.Logger:
    """Configure logging with optional Supabase integration.

    Args:
        service_name: Name stamped on structured log entries.
        supabase_client: Supabase client instance for remote logging.
        secrets: Values to mask wherever they appear in a log message.
        level: Root log level.

    Returns:
        Configured root logger.
    """
    global _supabase_handler

    service_name = service_name or "support-oauth"
    redaction = SecretRedactionFilter(secrets)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(PlainFormatter())
    stderr_handler.addFilter(redaction)
    root_logger.addHandler(stderr_handler)

    supabase_enabled = False
    if supabase_client:
        try:
            _supabase_handler = SupabaseHandler(
                supabase_client=supabase_client,
                service_name=service_name,
            )
            _supabase_handler.setLevel(level)
            _supabase_handler.setFormatter(JSONFormatter(service_name))
            _supabase_handler.addFilter(redaction)
            root_logger.addHandler(_supabase_handler)
            supabase_enabled = True
        except Exception as e:
            print(f"[WARNING] Supabase logging setup failed: {e}", file=sys.stderr)

    # Suppress noisy HTTP client logs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    if supabase_enabled:
        logger.info(f"[STARTUP] Supabase logging enabled for service: {service_name}")
    else:
        logger.info("[STARTUP] Supabase logging disabled (no client)")

    return root_logger


def flush_logs():
    """Manually flush any pending logs to Supabase."""
    if _supabase_handler:
        _supabase_handler.flush()
