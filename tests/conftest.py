"""Root pytest configuration for all tests."""

import logging

# markdownify and bs4 log nothing useful at DEBUG; keep converter DEBUG output readable
logging.getLogger("bs4").setLevel(logging.WARNING)
logging.getLogger("src.content_converter").setLevel(logging.DEBUG)
