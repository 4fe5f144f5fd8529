import json

import pytest

from app.core.database import TenantDatabases


class FakeWebSocket:
    """Collects frames the server sends to one socket."""

    def __init__(self):
        self.frames = []

    async def send_text(self, text: str) -> None:
        self.frames.append(json.loads(text))

    def events(self, name: str) -> list:
        return [f for f in self.frames if f.get("event") == name]


@pytest.fixture
def tenant_config(tmp_path):
    return {
        "acme": f"sqlite:///{tmp_path / 'acme.sqlite'}",
        "globex": f"sqlite:///{tmp_path / 'globex.sqlite'}",
    }


@pytest.fixture
def databases(tenant_config):
    dbs = TenantDatabases(config=tenant_config, create_tables=True)
    yield dbs
    dbs.dispose()
