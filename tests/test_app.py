import gradio as gr
import pytest

import app
from logic.logic_user import login_action, logout_action
from storage import IDENTITY_KEY, is_client_id


@pytest.mark.asyncio
async def test_visitors_do_not_share_a_session(tmp_path):
    data_dir = str(tmp_path)
    alice_id, alice = app.open_client_session("", data_dir)
    bob_id, bob = app.open_client_session(None, data_dir)
    assert alice_id != bob_id
    await alice.initialize()
    await bob.initialize()

    _msg, path = await login_action(alice, "alice@x.com", "pw", "/auth/signin")
    assert path == "/"

    assert bob.current is None
    assert bob.store.get(IDENTITY_KEY) is None
    assert bob.acknowledge_welcome() is False
    assert alice.acknowledge_welcome() is True

    # Bob signing out must not touch Alice.
    await logout_action(bob, "/auth/signin")
    assert alice.current.email == "alice@x.com"

    _id, bob_reloaded = app.open_client_session(bob_id, data_dir)
    assert (await bob_reloaded.initialize()).current is None


@pytest.mark.asyncio
async def test_returning_browser_restores_its_own_session(tmp_path):
    data_dir = str(tmp_path)
    client_id, manager = app.open_client_session("", data_dir)
    await manager.initialize()
    identity = await manager.establish("alice@x.com", "pw")

    same_id, reloaded = app.open_client_session(client_id, data_dir)
    assert same_id == client_id
    assert (await reloaded.initialize()).current == identity


def test_foreign_client_id_gets_a_fresh_client(tmp_path):
    client_id, manager = app.open_client_session("../../etc", str(tmp_path))
    assert is_client_id(client_id)
    assert manager.current is None


def test_build_demo():
    assert isinstance(app.build_demo(), gr.Blocks)
