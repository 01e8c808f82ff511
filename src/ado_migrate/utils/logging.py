"""Logging utilities for the migration tool."""

import sys
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger

MASK = '***'

_secrets: set = set()


def register_secrets(secrets: Iterable[str]) -> None:
    """Register values to be masked in every log record."""
    _secrets.update(s for s in secrets if s)


def mask_secrets(message: str) -> str:
    """Replace every registered secret in ``message`` with a mask."""
    for secret in _secrets:
        message = message.replace(secret, MASK)
    return message


def _patch_record(record) -> None:
    if _secrets:
        record['message'] = mask_secrets(record['message'])


def setup_logging(
    level: str = 'INFO',
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    secrets: Optional[Iterable[str]] = None,
) -> None:
    """Setup logging configuration using loguru.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        log_format: Optional custom log format
        secrets: Tokens masked out of every message
    """
    # Remove default handler
    logger.remove()

    if secrets:
        register_secrets(secrets)
    logger.configure(patcher=_patch_record, extra={'component': 'ado-migrate'})

    # Default format if not provided
    if log_format is None:
        log_format = (
            '<green>{time:YYYY-MM-DD HH:mm:ss}</green> | '
            '<level>{level: <8}</level> | '
            '<cyan>{extra[component]}</cyan> | '
            '<level>{message}</level>'
        )

    # Add console handler
    logger.add(
        sys.stderr,
        format=log_format,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    # Add file handler if specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # File format (no colors)
        file_format = (
            '{time:YYYY-MM-DD HH:mm:ss} | '
            '{level: <8} | '
            '{extra[component]} | '
            '{name}:{function}:{line} | '
            '{message}'
        )

        logger.add(
            log_file,
            format=file_format,
            level=level,
            rotation='10 MB',
            retention='30 days',
            compression='gz',
            backtrace=True,
            diagnose=False,
        )

    logger.info(f'Logging initialized with level: {level}')
    if log_file:
        logger.info(f'Log file: {log_file}')
