from __future__ import annotations

import logging

from yournal.core.security import redact_secrets

_NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite")


class RedactionFilter(logging.Filter):
    """Log filter that masks API keys before output."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(str(record.msg))
        if isinstance(record.args, dict):
            record.args = {key: _redact_arg(value) for key, value in record.args.items()}
        elif record.args:
            record.args = tuple(_redact_arg(arg) for arg in record.args)
        return True


def _redact_arg(value: object) -> object:
    # Non-string args keep their type so numeric placeholders still format.
    return redact_secrets(value) if isinstance(value, str) else value


def setup_logging(level: str) -> None:
    """Configure application logging with secret redaction."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    redaction = RedactionFilter()
    root = logging.getLogger()
    for target in (root, *root.handlers):
        if not any(isinstance(item, RedactionFilter) for item in target.filters):
            target.addFilter(redaction)
    # Upstream request lines can carry bearer tokens at DEBUG.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
