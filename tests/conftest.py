# tests/conftest.py

from io import BytesIO

import pytest
from PIL import Image

from app import create_app

OWNER = "0xAbCd1234EfGh5678IjKl9012MnOp3456QrSt7890"
STRANGER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"


class FakeLedger:
    """Records createTask calls instead of talking to a node."""

    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    def create_task(self, task_id, stake_wei, deadline_ts):
        self.calls.append((task_id, stake_wei, deadline_ts))
        if self.fail:
            raise RuntimeError("execution reverted")
        return "0x" + "ab" * 32

    def is_connected(self):
        return not self.fail


@pytest.fixture()
def make_app(tmp_path):
    def _make(config_overrides=None, **kwargs):
        config = {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'test.db'}",
            "UPLOAD_FOLDER": str(tmp_path / "uploads"),
            "LEDGER_RPC_URL": None,
            "LEDGER_CONTRACT_ADDRESS": None,
            "LEDGER_PRIVATE_KEY": None,
        }
        config.update(config_overrides or {})
        return create_app(config, **kwargs)
    return _make


@pytest.fixture()
def app(make_app):
    return make_app()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def service(app):
    with app.app_context():
        yield app.extensions["taskstake"]


@pytest.fixture()
def png_bytes():
    buf = BytesIO()
    Image.new("RGB", (8, 8), color=(20, 160, 90)).save(buf, format="PNG")
    return buf.getvalue()
