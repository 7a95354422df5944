"""Structured logging configuration for template imports.

Configures structlog for JSON-formatted, import-ID-correlated logging.
Secret redaction is explicit: the caller passes the values to scrub, nothing
is registered in library-global state by the importer itself.

Usage::

    from exoscale_import.observability.logging import configure_logging, get_logger

    configure_logging(redact=settings.secrets)  # Call once at startup
    logger = get_logger(__name__)
    logger.info("image_uploaded", bucket="tmp", key="disk-123.qcow2")
"""

from __future__ import annotations

import logging
import os
import sys
from contextvars import ContextVar
from typing import Any, Iterable

import structlog

# Context variable for the current import run.
import_id_ctx: ContextVar[str | None] = ContextVar("import_id", default=None)

REDACTED = "<redacted>"

_configured = False


def _add_import_id(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict,
) -> dict:
    """Inject the current import_id from context into every log entry."""
    iid = import_id_ctx.get()
    if iid is not None:
        event_dict["import_id"] = iid
    return event_dict


class SecretRedactor:
    """structlog processor replacing secret values in every string field."""

    def __init__(self, secrets: Iterable[str] = ()) -> None:
        # Longest first so a secret containing another is scrubbed whole.
        self._secrets = tuple(sorted({s for s in secrets if s}, key=len, reverse=True))

    def redact(self, value: str) -> str:
        for secret in self._secrets:
            if secret in value:
                value = value.replace(secret, REDACTED)
        return value

    def scrub(self, value: Any) -> Any:
        """Redact strings, descending into dicts, lists, tuples and sets."""
        if isinstance(value, str):
            return self.redact(value)
        if isinstance(value, dict):
            return {k: self.scrub(v) for k, v in value.items()}
        if type(value) in (list, tuple, set, frozenset):
            return type(value)(self.scrub(v) for v in value)
        return value

    def __call__(
        self,
        logger: logging.Logger,
        method_name: str,
        event_dict: dict,
    ) -> dict:
        if not self._secrets:
            return event_dict
        for key, value in event_dict.items():
            event_dict[key] = self.scrub(value)
        return event_dict


def configure_logging(
    *,
    level: str | None = None,
    json_output: bool | None = None,
    redact: Iterable[str] = (),
) -> None:
    """Route structlog and stdlib records through one stdout handler.

    Only the first call has any effect.

    Args:
        level: Minimum level name; falls back to ``$LOG_LEVEL``, then INFO.
        json_output: JSON lines when true, console rendering when false;
            falls back to ``$LOG_FORMAT == "json"`` (the default).
        redact: Secret values (API key/secret) scrubbed from every event.
    """
    global _configured
    if _configured:
        return
    _configured = True

    level = level or os.environ.get("LOG_LEVEL", "INFO")
    if json_output is None:
        json_output = os.environ.get("LOG_FORMAT", "json") == "json"

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        _add_import_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        # Last so rendered tracebacks are scrubbed too.
        SecretRedactor(redact),
    ]

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Quiet noisy libraries.
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Logger for *name* (usually ``__name__``)."""
    return structlog.get_logger(name)


def _reset_logging_for_tests() -> None:
    global _configured
    _configured = False
    structlog.reset_defaults()
