"""
Logging setup for the today-state core.

Records carry two extra fields: the component ``domain`` (store, cache, today,
streak, dashboard, remote) and the ``request_id`` of the API call that
triggered them, so one dashboard refresh can be followed across the cache,
resolver and remote-service log lines.
"""
import logging
import re
import sys
from contextvars import ContextVar

DOMAIN_STORE = "store"
DOMAIN_CACHE = "cache"
DOMAIN_TODAY = "today"
DOMAIN_STREAK = "streak"
DOMAIN_DASHBOARD = "dashboard"
DOMAIN_REMOTE = "remote"

LOG_FORMAT = "%(asctime)s | %(levelname)s | [%(domain)s] | %(request_id)s | %(name)s | %(message)s"

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


def get_domain_logger(name: str, domain: str) -> logging.LoggerAdapter:
    base = logging.getLogger(name)
    return logging.LoggerAdapter(base, {"domain": domain})


class RecordContextFilter(logging.Filter):
    """Fill ``domain`` and ``request_id`` so the format string never fails on foreign loggers."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "domain"):
            record.domain = "app"  # type: ignore[attr-defined]
        record.request_id = request_id_var.get()  # type: ignore[attr-defined]
        return True


# Access tokens travel in headers and in the store under @nora_access_token.
_SECRET_PATTERNS = [
    re.compile(r"(?i)(authorization\s*[=:]\s*bearer\s+)([^\s,;]+)"),
    re.compile(r"(?i)(bearer\s+)([A-Za-z0-9\-_.=]+)"),
    re.compile(r"(?i)(@nora_access_token\W+)([^\s,;'\"]+)"),
    re.compile(r"(?i)((?:access|refresh)?[_-]?token\s*[=:]\s*)([^\s,;]+)"),
    re.compile(r"(?i)(password\s*[=:]\s*)([^\s,;]+)"),
]


def redact_secrets(message: str) -> str:
    text = str(message or "")
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return text


class SecretRedactionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(record.getMessage())
        record.args = ()
        return True


class SuppressPollingNoiseFilter(logging.Filter):
    """Drop successful access-log lines for /health and analysis polling, which clients hit on a timer."""

    _NOISY = ("/health", "/poll")

    def filter(self, record: logging.LogRecord) -> bool:
        msg = record.getMessage()
        return not (" 200" in msg and any(path in msg for path in self._NOISY))


def configure_logging(level: str = "INFO") -> None:
    context_filter = RecordContextFilter()
    redaction_filter = SecretRedactionFilter()
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(context_filter)
        handler.addFilter(redaction_filter)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").addFilter(SuppressPollingNoiseFilter())
