"""Content conversion module for XHTML ↔ markdown conversion.

This module provides the MarkdownConverter for bidirectional conversion
between Confluence storage format (XHTML) and portable markdown, and the
NodeTracker for replacing individual storage nodes by identifier.
"""

from .config import ConfigLoader, ConverterConfig
from .errors import ConfigError, ConversionError, ConverterError, StorageParseError
from .markdown_converter import MarkdownConverter
from .models import ConversionResult, PartialUpdatePlan, ReplaceResult
from .node_tracker import NodeTracker
from .page_header import emit_header, ensure_header, extract_header_extras, parse_header

__all__ = [
    'MarkdownConverter',
    'NodeTracker',
    'ConverterConfig',
    'ConfigLoader',
    'ConversionResult',
    'ReplaceResult',
    'PartialUpdatePlan',
    'ConverterError',
    'ConversionError',
    'StorageParseError',
    'ConfigError',
    'parse_header',
    'emit_header',
    'ensure_header',
    'extract_header_extras',
]
