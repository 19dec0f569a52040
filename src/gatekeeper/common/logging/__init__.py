"""Logging helpers."""

from gatekeeper.common.logging.logger import NOTICE, SECURITY_CHANNEL, get_logger

__all__ = ["NOTICE", "SECURITY_CHANNEL", "get_logger"]
