import logging
import re
import sys
from pathlib import Path
from datetime import datetime, timezone

LOGGER_NAME = "cinepost"

_SECRET_PATTERNS = [
    (re.compile(r'((?:api_key|apikey|key)=)[^&\s\'"]+', re.IGNORECASE), r'\1***'),
    (re.compile(r'(Bearer\s+)[A-Za-z0-9._\-]+'), r'\1***'),
]


def redact_secrets(text: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


class RedactSecretsFilter(logging.Filter):
    """Masks API keys in formatted records before any handler writes them."""
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(log_level_console=logging.INFO, log_file=None):
    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(logging.DEBUG)
    for handler in log.handlers[:]:
        log.removeHandler(handler)
        handler.close()

    redact_filter = RedactSecretsFilter()

    # Console
    log_fmt_console = '%(levelname)-8s: %(message)s'
    if log_level_console <= logging.DEBUG:
        log_fmt_console = '%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s'

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level_console)
    console_handler.setFormatter(logging.Formatter(log_fmt_console, datefmt='%H:%M:%S'))
    console_handler.addFilter(redact_filter)
    log.addHandler(console_handler)

    # File
    if log_file:
        try:
            log_file_path = Path(log_file).resolve()
            log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file_path, mode='a', encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)-8s [%(name)s:%(lineno)d] %(message)s', datefmt='%Y-%m-%d %H:%M:%S%z'))
            file_handler.addFilter(redact_filter)
            log.addHandler(file_handler)
            log.info(f"--- Log session started: {datetime.now(timezone.utc).isoformat()} ---")
            log.info(f"Command: {redact_secrets(' '.join(sys.argv))}")
        except OSError as e:
            log.error(f"Failed to configure file logging to '{log_file}': {e}")
    return log
