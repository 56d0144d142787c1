import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from client.config import ClientSettings
from client.state import SessionIdentity


@pytest.fixture
def identity() -> SessionIdentity:
    return SessionIdentity(username="Alice", password=b"hunter2")


@pytest.fixture
def settings() -> ClientSettings:
    return ClientSettings(retry_interval=0.01)
