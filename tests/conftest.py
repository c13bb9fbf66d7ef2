import os
import sys

import pytest

# Add project root and this directory to sys.path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from refresher.core.config import Config, get_worker_settings


@pytest.fixture(autouse=True)
def _fresh_config():
    """Settings are cached process-wide; start every test from a clean load."""
    Config.reset()
    get_worker_settings.cache_clear()
    yield
    Config.reset()
    get_worker_settings.cache_clear()
