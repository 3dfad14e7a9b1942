import asyncio
import json

import pytest

from conftest import GatedBackend, RecordingStore
from errors import (
    InvalidTransitionError,
    NotAuthenticatedError,
    OperationInProgressError,
    StoreError,
    TransportError,
    ValidationError,
)
from logic.logic_session import (
    REJECT,
    Identity,
    LocalAuthBackend,
    Resolved,
    SessionManager,
    Unresolved,
)
from storage import IDENTITY_KEY, WELCOMED_KEY, MemoryStore


def stored_identity(store):
    raw = store.get(IDENTITY_KEY)
    return Identity.from_dict(json.loads(raw)) if raw else None


async def rederive(store):
    """What a fresh process would restore from this store."""
    return (await SessionManager(store).initialize()).current


# ================== initialize ==================


@pytest.mark.asyncio
async def test_session_starts_unresolved(manager):
    session = manager.snapshot()
    assert isinstance(session.state, Unresolved)
    assert not session.resolved
    assert session.current is None


@pytest.mark.asyncio
async def test_initialize_empty_store(manager):
    session = await manager.initialize()
    assert session.resolved
    assert session.state == Resolved(None)
    assert not session.authenticated


@pytest.mark.asyncio
async def test_initialize_restores_stored_identity():
    identity = Identity(id="u1", email="a@x.com", display_name="a", onboarding_complete=True)
    store = RecordingStore({IDENTITY_KEY: json.dumps(identity.to_dict())})

    session = await SessionManager(store).initialize()

    assert session.current == identity


@pytest.mark.asyncio
async def test_initialize_reads_store_only_once():
    store = RecordingStore()
    manager = SessionManager(store)

    first = await manager.initialize()
    reads = store.reads
    second = await manager.initialize()

    assert store.reads == reads
    assert first == second


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps(["a list"]),
        json.dumps({"email": "a@x.com", "display_name": "a"}),
        json.dumps({"id": "u1", "email": "", "display_name": "a"}),
        json.dumps({"id": "u1", "email": "a@x.com", "display_name": "a", "onboarding_complete": "yes"}),
    ],
)
async def test_initialize_ignores_malformed_identity(raw):
    session = await SessionManager(MemoryStore({IDENTITY_KEY: raw})).initialize()
    assert session.resolved
    assert session.current is None


# ================== establish / register ==================


@pytest.mark.asyncio
async def test_establish_creates_and_persists_identity(manager, store):
    await manager.initialize()
    identity = await manager.establish("  Alice@Example.com ", "secret")

    assert identity.email == "alice@example.com"
    assert identity.display_name == "alice"
    assert identity.onboarding_complete is False
    assert manager.current == identity
    assert stored_identity(store) == identity
    assert await rederive(store) == identity


@pytest.mark.asyncio
@pytest.mark.parametrize("email,credential", [("", "pw"), ("   ", "pw"), (None, "pw"), ("a@x.com", "")])
async def test_establish_rejects_empty_input(manager, store, email, credential):
    await manager.initialize()
    with pytest.raises(ValidationError):
        await manager.establish(email, credential)
    assert manager.current is None
    assert store.writes == []


@pytest.mark.asyncio
async def test_reestablish_same_email_keeps_onboarding_progress(manager):
    await manager.initialize()
    first = await manager.establish("a@x.com", "pw")
    assert first.onboarding_complete is False
    await manager.mutate(onboarding_complete=True)

    again = await manager.establish("a@x.com", "other-pw")

    assert again.onboarding_complete is True
    assert again.id == first.id


@pytest.mark.asyncio
async def test_establish_other_email_replaces_identity(manager, store):
    await manager.initialize()
    first = await manager.establish("a@x.com", "pw")
    second = await manager.establish("b@x.com", "pw")

    assert second.id != first.id
    assert manager.current == second
    assert stored_identity(store) == second


@pytest.mark.asyncio
async def test_establish_after_terminate_starts_fresh(manager):
    await manager.initialize()
    first = await manager.establish("a@x.com", "pw")
    await manager.mutate(onboarding_complete=True)
    await manager.terminate()

    again = await manager.establish("a@x.com", "pw")

    assert again.id != first.id
    assert again.onboarding_complete is False


@pytest.mark.asyncio
async def test_register_always_creates_fresh_identity(manager, store):
    await manager.initialize()
    old = await manager.establish("a@x.com", "pw")
    await manager.mutate(onboarding_complete=True)

    new = await manager.register("a@x.com", "pw2", "  Alice ")

    assert new.id != old.id
    assert new.display_name == "Alice"
    assert new.onboarding_complete is False
    assert stored_identity(store) == new
    assert await rederive(store) == new


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "email,credential,name",
    [("", "pw", "Alice"), ("a@x.com", "pw", ""), ("a@x.com", "pw", "   "), ("a@x.com", "", "Alice")],
)
async def test_register_rejects_empty_input(manager, email, credential, name):
    with pytest.raises(ValidationError):
        await manager.register(email, credential, name)
    assert manager.current is None


# ================== mutate ==================


@pytest.mark.asyncio
async def test_mutate_requires_session(manager):
    await manager.initialize()
    with pytest.raises(NotAuthenticatedError):
        await manager.mutate(display_name="Bob")


@pytest.mark.asyncio
async def test_onboarding_flag_is_monotonic(manager, store):
    await manager.initialize()
    await manager.establish("a@x.com", "pw")

    done = await manager.mutate(onboarding_complete=True)
    assert done.onboarding_complete is True
    before = store.get(IDENTITY_KEY)

    with pytest.raises(InvalidTransitionError):
        await manager.mutate(onboarding_complete=False)

    assert store.get(IDENTITY_KEY) == before
    assert manager.current.onboarding_complete is True


@pytest.mark.asyncio
async def test_invalid_transition_is_a_validation_error(manager):
    await manager.establish("a@x.com", "pw")
    await manager.mutate(onboarding_complete=True)
    with pytest.raises(ValidationError):
        await manager.mutate(onboarding_complete=False, display_name="New")
    assert manager.current.display_name == "a"


@pytest.mark.asyncio
async def test_mutate_display_name(manager, store):
    await manager.establish("a@x.com", "pw")
    updated = await manager.mutate(display_name="  Alice  ")

    assert updated.display_name == "Alice"
    assert stored_identity(store).display_name == "Alice"
    assert await rederive(store) == updated


@pytest.mark.asyncio
async def test_mutate_rejects_empty_name_and_unknown_fields(manager):
    identity = await manager.establish("a@x.com", "pw")
    with pytest.raises(ValidationError):
        await manager.mutate(display_name="  ")
    with pytest.raises(ValidationError):
        await manager.mutate(email="b@x.com")
    assert manager.current == identity


@pytest.mark.asyncio
async def test_failed_store_write_leaves_session_untouched():
    class FailingStore(MemoryStore):
        fail = False

        def set(self, key, value):
            if self.fail:
                raise StoreError("disk full")
            super().set(key, value)

    store = FailingStore()
    manager = SessionManager(store)
    identity = await manager.establish("a@x.com", "pw")

    store.fail = True
    with pytest.raises(StoreError):
        await manager.mutate(display_name="Other")

    assert manager.current == identity
    assert not manager.in_transition


@pytest.mark.asyncio
@pytest.mark.parametrize("value", ["false", "true", 1, 0, None])
async def test_mutate_rejects_non_boolean_onboarding_flag(manager, store, value):
    identity = await manager.establish("a@x.com", "pw")

    with pytest.raises(ValidationError):
        await manager.mutate(onboarding_complete=value)

    assert manager.current == identity
    assert stored_identity(store) == identity


@pytest.mark.asyncio
async def test_failed_sign_out_write_keeps_session_and_store_in_step():
    class FailingStore(MemoryStore):
        fail = False

        def remove_many(self, keys):
            if self.fail:
                raise StoreError("disk full")
            super().remove_many(keys)

    store = FailingStore()
    manager = SessionManager(store)
    identity = await manager.establish("a@x.com", "pw")
    assert manager.acknowledge_welcome() is True

    store.fail = True
    with pytest.raises(StoreError):
        await manager.terminate()

    assert manager.current == identity
    assert await rederive(store) == identity
    assert store.get(WELCOMED_KEY) == "true"

    store.fail = False
    await manager.terminate()
    assert manager.current is None
    assert await rederive(store) is None


# ================== terminate ==================


@pytest.mark.asyncio
async def test_terminate_clears_session_and_store(manager, store):
    await manager.initialize()
    await manager.establish("a@x.com", "pw")
    assert manager.acknowledge_welcome() is True

    await manager.terminate()

    assert manager.current is None
    assert manager.snapshot().resolved
    assert store.get(IDENTITY_KEY) is None
    assert store.get(WELCOMED_KEY) is None
    assert store.writes[-1] == ("remove_many", (IDENTITY_KEY, WELCOMED_KEY))
    assert await rederive(store) is None


@pytest.mark.asyncio
async def test_terminate_without_session_is_noop(manager, store):
    await manager.initialize()
    await manager.terminate()
    await manager.terminate()

    assert manager.current is None
    assert store.writes == []


# ================== welcome marker ==================


@pytest.mark.asyncio
async def test_welcome_shown_once_per_sign_in(manager):
    await manager.initialize()
    assert manager.acknowledge_welcome() is False

    await manager.establish("a@x.com", "pw")
    assert manager.acknowledge_welcome() is True
    assert manager.acknowledge_welcome() is False

    await manager.terminate()
    await manager.establish("a@x.com", "pw")
    assert manager.acknowledge_welcome() is True


# ================== concurrency ==================


@pytest.mark.asyncio
async def test_in_transition_and_stale_snapshot_during_operation():
    backend = GatedBackend()
    manager = SessionManager(MemoryStore(), backend=backend)
    await manager.initialize()

    task = asyncio.create_task(manager.establish("a@x.com", "pw"))
    await asyncio.sleep(0)

    session = manager.snapshot()
    assert session.in_transition is True
    assert session.current is None

    backend.gate.set()
    identity = await task

    assert manager.in_transition is False
    assert manager.current == identity


@pytest.mark.asyncio
async def test_overlapping_operations_are_queued():
    backend = GatedBackend()
    manager = SessionManager(MemoryStore(), backend=backend)
    await manager.initialize()

    signing_in = asyncio.create_task(manager.establish("a@x.com", "pw"))
    await asyncio.sleep(0)
    updating = asyncio.create_task(manager.mutate(onboarding_complete=True))
    await asyncio.sleep(0)
    assert not updating.done()

    backend.gate.set()
    identity = await signing_in
    updated = await updating

    assert updated.id == identity.id
    assert updated.onboarding_complete is True
    assert manager.current == updated


@pytest.mark.asyncio
async def test_reject_policy_refuses_overlapping_operation():
    backend = GatedBackend()
    manager = SessionManager(MemoryStore(), backend=backend, policy=REJECT)
    await manager.initialize()

    signing_in = asyncio.create_task(manager.establish("a@x.com", "pw"))
    await asyncio.sleep(0)

    with pytest.raises(OperationInProgressError):
        await manager.terminate()

    backend.gate.set()
    identity = await signing_in
    assert manager.current == identity


def test_unknown_policy_is_rejected():
    with pytest.raises(ValueError):
        SessionManager(MemoryStore(), policy="drop")


# ================== backend failures ==================


@pytest.mark.asyncio
async def test_backend_timeout_surfaces_as_transport_error():
    backend = GatedBackend()
    store = RecordingStore()
    manager = SessionManager(store, backend=backend, timeout=0.01)
    await manager.initialize()

    with pytest.raises(TransportError):
        await manager.establish("a@x.com", "pw")

    assert manager.current is None
    assert manager.in_transition is False
    assert store.writes == []


@pytest.mark.asyncio
async def test_backend_transport_error_leaves_session_unchanged():
    class DownBackend(LocalAuthBackend):
        async def push_update(self, identity):
            raise TransportError("Server unavailable.")

    store = MemoryStore()
    manager = SessionManager(store, backend=DownBackend())
    identity = await manager.establish("a@x.com", "pw")

    with pytest.raises(TransportError):
        await manager.mutate(onboarding_complete=True)

    assert manager.current == identity
    assert stored_identity(store) == identity


@pytest.mark.asyncio
async def test_simulated_latency_is_awaited():
    manager = SessionManager(MemoryStore(), backend=LocalAuthBackend(latency=0.01))
    identity = await manager.establish("a@x.com", "pw")
    assert manager.current == identity


# ================== single current identity ==================


@pytest.mark.asyncio
async def test_store_always_matches_current_identity(manager, store):
    await manager.initialize()
    steps = [
        lambda: manager.establish("a@x.com", "pw"),
        lambda: manager.register("b@x.com", "pw", "Bee"),
        lambda: manager.terminate(),
        lambda: manager.terminate(),
        lambda: manager.establish("b@x.com", "pw"),
        lambda: manager.establish("b@x.com", "pw"),
        lambda: manager.register("c@x.com", "pw", "Cee"),
    ]
    for step in steps:
        await step()
        assert stored_identity(store) == manager.current
        assert await rederive(store) == manager.current
