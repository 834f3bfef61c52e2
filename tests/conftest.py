"""
Pytest configuration and fixtures for whatsrelay tests.
"""

import asyncio
import sys
from pathlib import Path

import pytest

# Add the repository root to path for imports
# This allows `from whatsrelay.lifecycle import ...` to work
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))

from whatsrelay.providers import SendAck  # noqa: E402


# =============================================================================
# Mock Provider for Testing
# =============================================================================


class FakeSession:
    """In-memory ProviderSession."""

    def __init__(self, user_id=None):
        self._user_id = user_id
        self.sent = []
        self.send_errors = {}
        self.logout_error = None
        self.logout_delay = 0.0
        self.logged_out = False
        self.closed = False
        self.saved = 0

    @property
    def user_id(self):
        return self._user_id

    async def send(self, jid, text):
        error = self.send_errors.get(jid)
        if error is not None:
            raise error
        self.sent.append((jid, text))
        return SendAck(jid=jid, message_id=f"MSG{len(self.sent)}")

    async def logout(self):
        if self.logout_delay:
            await asyncio.sleep(self.logout_delay)
        if self.logout_error is not None:
            raise self.logout_error
        self.logged_out = True

    async def save_credentials(self):
        self.saved += 1

    async def close(self):
        self.closed = True


class FakeProvider:
    """MessagingProvider that records every connect() and its sink."""

    def __init__(self):
        self.sinks = []
        self.sessions = []
        self.connect_errors = []

    @property
    def name(self):
        return "fake"

    @property
    def connect_count(self):
        return len(self.sinks)

    async def connect(self, sink):
        self.sinks.append(sink)
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        session = FakeSession()
        self.sessions.append(session)
        return session

    def emit(self, event, index=-1):
        """Push an event through the sink of a given connect() call."""
        self.sinks[index](event)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def fake_session():
    return FakeSession(user_id="628999:3@s.whatsapp.net")


@pytest.fixture
def sample_record():
    """A raw inbound provider message."""
    return {
        "key": {"remoteJid": "628123456789@s.whatsapp.net", "fromMe": False, "id": "3EB0ABCDEF"},
        "message": {"conversation": "Halo, jadwal besok?"},
        "pushName": "Budi",
    }
