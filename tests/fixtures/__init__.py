"""Test fixtures for converter tests.

This module provides sample Confluence storage format pages covering the
constructs the converter tokenizes (macros, tables, links, comments).
"""

from .sample_pages import (
    SAMPLE_PAGE_SIMPLE,
    SAMPLE_PAGE_WITH_MACROS,
    SAMPLE_PAGE_WITH_TABLES,
    SAMPLE_PAGE_WITH_NODE_IDS,
    SAMPLE_PAGE_WITH_LAYOUT,
    SAMPLE_FRAGMENT_ROUND_TRIP,
)

__all__ = [
    "SAMPLE_PAGE_SIMPLE",
    "SAMPLE_PAGE_WITH_MACROS",
    "SAMPLE_PAGE_WITH_TABLES",
    "SAMPLE_PAGE_WITH_NODE_IDS",
    "SAMPLE_PAGE_WITH_LAYOUT",
    "SAMPLE_FRAGMENT_ROUND_TRIP",
]
