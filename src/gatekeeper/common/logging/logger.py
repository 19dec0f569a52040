"""Centralized logging configuration."""

import logging

# Syslog-style NOTICE sits between INFO and WARNING.
NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")

SECURITY_CHANNEL = "gatekeeper.security"


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Get a configured logger instance."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level))
    
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    
    return logger
