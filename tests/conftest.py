"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides fake HTTP responses and an in-memory event sink.
"""
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)

from registry_cleaner.events import EventSink  # noqa: E402


def make_response(status_code=200, body=None, headers=None, links=None, json_error=False):
    """Build a MagicMock that looks enough like a requests.Response"""
    response = MagicMock()
    response.status_code = status_code
    response.headers = headers or {}
    response.links = links or {}
    if json_error:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = body
    return response


class RecordingSink(EventSink):
    """Keeps every emitted event in memory"""

    def __init__(self):
        self.events = []

    def emit(self, event):
        self.events.append(event)

    def actions(self):
        return [e.action.value for e in self.events]

    def find(self, action, resource=None):
        return [
            e for e in self.events
            if e.action.value == action and (resource is None or e.resource.value == resource)
        ]


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def recorder(sink):
    from registry_cleaner.events import EventRecorder

    return EventRecorder(sink, "test", "owner/repo")


@pytest.fixture
def client():
    """A MagicMock standing in for RegistryHttpClient"""
    from registry_cleaner.http_client import RegistryHttpClient

    return MagicMock(spec=RegistryHttpClient)
