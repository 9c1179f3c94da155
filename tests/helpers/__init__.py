"""Test helper modules for converter testing.

- assertion_helpers: Custom assertions for content comparison
"""

from .assertion_helpers import (
    assert_contains,
    assert_markdown_similar,
    assert_not_contains,
    assert_xhtml_similar,
    normalize_whitespace,
)

__all__ = [
    'assert_contains',
    'assert_not_contains',
    'assert_xhtml_similar',
    'assert_markdown_similar',
    'normalize_whitespace',
]
