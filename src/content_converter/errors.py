"""Typed exception hierarchy for content conversion errors.

This module defines all custom exceptions used by the content converter.
All exceptions inherit from ConverterError base class for easy catching and
include descriptive messages with context to help with debugging.

Malformed or unrecognized markup is never an error: unknown macros degrade
to their literal content and unbalanced markers are dropped. The only hard
failure is input the markup parser cannot parse at all.
"""

from typing import Optional


class ConverterError(Exception):
    """Base exception for all content converter errors."""
    pass


class ConversionError(ConverterError):
    """Raised when content conversion between formats fails."""

    def __init__(self, message: str):
        super().__init__(message)


class StorageParseError(ConversionError):
    """Raised when storage format input cannot be parsed into a markup tree."""

    def __init__(self, reason: str, snippet: Optional[str] = None):
        message = f"Unable to parse storage format: {reason}"
        if snippet:
            message += f" (near: {snippet[:60]!r})"
        super().__init__(message)
        self.reason = reason
        self.snippet = snippet


class ConfigError(ConverterError):
    """Raised when converter configuration validation fails."""

    def __init__(self, message: str, config_field: Optional[str] = None):
        if config_field:
            full_message = f"Configuration error in field '{config_field}': {message}"
        else:
            full_message = f"Configuration error: {message}"
        super().__init__(full_message)
        self.config_field = config_field
