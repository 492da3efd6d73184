"""
Shared fixtures for the driver node test suite.
"""

import copy
import json
import socket

import pytest

SAMPLE_DOCUMENT = {
    "configuration": {
        "hubHost": "h",
        "hubPort": 4444,
        "host": "n",
        "port": 5555,
        "register": True,
        "maxSession": 1,
        "autApk": "a.apk",
        "autTestApk": "t.apk",
        "installApks": True,
        "cleanSavedUserData": False,
    },
    "capabilities": [{"platform": "ANDROID"}],
}


@pytest.fixture
def sample_document():
    """A fresh copy of a valid configuration document."""
    return copy.deepcopy(SAMPLE_DOCUMENT)


@pytest.fixture
def write_config(tmp_path):
    """Writes a document (dict or raw string) to a temp file and returns its path."""
    def _write(document, name="driverNode.json"):
        path = tmp_path / name
        content = document if isinstance(document, str) else json.dumps(document)
        path.write_text(content, encoding="utf-8")
        return str(path)
    return _write


@pytest.fixture
def free_port():
    """A local TCP port nothing is listening on."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
