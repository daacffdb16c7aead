"""Logging configuration for certificate_shim."""

from certificate_shim.logging.config import bind_worker, configure_logging, get_logger

__all__ = ["bind_worker", "configure_logging", "get_logger"]
