import contextvars
import json
import logging
import re
from datetime import datetime, timezone

from codejudge.settings import get_settings

submission_id_context: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    'submission_id',
    default=None
)


class SubmissionFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        submission_id = submission_id_context.get()
        if submission_id:
            record.submission_id = submission_id
        return True


class JSONFormatter(logging.Formatter):
    _patterns = [
        (r'(["\']?(?:api[_-]?)?(?:key|token|secret|password)["\']?\s*[:=]\s*["\']?)([^"\'\s,}]+)(["\']?)',
         r'\1***REDACTED***\3'),
        (r'(Bearer\s+)([A-Za-z0-9\-_.]+)', r'\1***REDACTED***'),
        (r'(https?://[^:/\s]+:)([^@\s]+)(@)', r'\1***REDACTED***\3'),
    ]

    def _sanitize_sensitive_data(self, data: str) -> str:
        """Mask credentials that may leak through service URLs or headers."""
        for pattern, replacement in self._patterns:
            data = re.sub(pattern, replacement, data, flags=re.IGNORECASE)
        return data

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': self._sanitize_sensitive_data(record.getMessage()),
        }

        if hasattr(record, 'submission_id'):
            log_data['submission_id'] = record.submission_id

        if record.exc_info:
            exc_text = self.formatException(record.exc_info)
            log_data['exc_info'] = self._sanitize_sensitive_data(exc_text)

        return json.dumps(log_data, ensure_ascii=False)


def setup_logger() -> logging.Logger:
    logger = logging.getLogger('codejudge')
    logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(JSONFormatter())
    console_handler.addFilter(SubmissionFilter())
    logger.addHandler(console_handler)

    log_level_name = get_settings().LOG_LEVEL.upper()
    logger.setLevel(getattr(logging, log_level_name, logging.INFO))

    return logger


logger = setup_logger()
