"""Observability helpers for template imports."""

from .logging import SecretRedactor, configure_logging, get_logger, import_id_ctx

__all__ = [
    "SecretRedactor",
    "configure_logging",
    "get_logger",
    "import_id_ctx",
]
