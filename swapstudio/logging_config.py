import logging
from datetime import datetime, timezone

LOG_FORMAT = "%(asctime)sZ | %(levelname)s | %(name)s | %(message)s"

# chatty third-party loggers; the client logs each call itself
QUIET_LOGGERS = ("httpx", "httpcore", "multipart", "PIL")

def _utc(*args):
    return datetime.now(timezone.utc).timetuple()

def setup_logging(level: str = "INFO"):
    logging.basicConfig(level=(level or "INFO").upper(), format=LOG_FORMAT)
    logging.Formatter.converter = _utc
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

def safe_preview(s, max_chars: int = 500) -> str:
    """Truncate upstream bodies before they go into a log line or message."""
    if s is None:
        return ""
    s = str(s)
    return s if len(s) <= max_chars else s[:max_chars] + "...(truncated)"
