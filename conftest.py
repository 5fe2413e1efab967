# Ensure project root is in sys.path for test imports
import os
import sys

import pytest
from dotenv import load_dotenv

project_root = os.path.dirname(os.path.abspath(__file__))
if project_root not in sys.path:
    sys.path.insert(0, project_root)

# Load .env file for tests
load_dotenv(os.path.join(project_root, ".env"))


@pytest.fixture(autouse=True)
def _ignore_dev_config(monkeypatch):
    """Tests always run against the packaged defaults."""
    monkeypatch.setenv("RELAY_IGNORE_DEV_CONFIG", "true")
    for key in list(os.environ):
        if key.startswith("RELAY__"):
            monkeypatch.delenv(key)
