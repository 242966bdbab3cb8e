"""Root pytest configuration for all tests."""

import logging

# atlassian-python-api logs expected 404 lookups at ERROR level
logging.getLogger("atlassian").setLevel(logging.WARNING)
