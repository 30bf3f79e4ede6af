"""
Shared utilities for the Demonlist scoring engine.

This module provides common functions used across multiple modules
to avoid code duplication.
"""

import logging
from datetime import datetime, timezone

from demonlist.config import MAX_PROGRESS, MIN_PROGRESS


# --- Exceptions ---
class DemonlistError(Exception):
    """Base exception for engine errors"""
    pass


class ValidationError(DemonlistError):
    """Input rejected at a mutation boundary"""
    pass


class InvariantViolation(DemonlistError):
    """Internal contract broken (e.g. two demons sharing a position)"""
    pass


# --- Logging Setup ---
def setup_logging(name: str | None = None, level: int = logging.INFO) -> logging.Logger:
    """
    Configure and return a logger with consistent formatting.

    Args:
        name: Logger name (usually __name__ from the calling module)
        level: Logging level (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)
    return logger


# --- Time ---
def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the log stores naive UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(moment: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed to be UTC already."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


# --- Validation ---
def validate_percentage(value: int, field: str) -> None:
    """
    Validate that a progress/requirement value is a percentage.

    Raises:
        ValidationError: If value is outside MIN_PROGRESS..MAX_PROGRESS
    """
    if not MIN_PROGRESS <= value <= MAX_PROGRESS:
        raise ValidationError(
            f"Invalid {field}: {value}. "
            f"Must be between {MIN_PROGRESS} and {MAX_PROGRESS}"
        )


def validate_position(position: int, list_size: int) -> None:
    """
    Validate that a position lies inside 1..list_size.

    Raises:
        ValidationError: If position is out of range
    """
    if not 1 <= position <= list_size:
        raise ValidationError(
            f"Invalid position: {position}. "
            f"Allowed values: 1 to {list_size}"
        )


__all__ = [
    # Exceptions
    'DemonlistError',
    'ValidationError',
    'InvariantViolation',
    # Logging
    'setup_logging',
    # Time
    'utcnow',
    'as_naive_utc',
    # Validation
    'validate_percentage',
    'validate_position',
]
