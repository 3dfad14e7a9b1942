"""
Session lifecycle: who the current user is, how that survives restarts,
and the four operations allowed to change it (establish, register,
mutate, terminate).

All writes go through SessionManager. Consumers read immutable
`Session` snapshots and never touch Identity fields directly.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Protocol, Union

from errors import (
    InvalidTransitionError,
    NotAuthenticatedError,
    OperationInProgressError,
    TransportError,
    ValidationError,
)
from storage import IDENTITY_KEY, WELCOMED_KEY

logger = logging.getLogger(__name__)

QUEUE = "queue"
REJECT = "reject"
MUTABLE_FIELDS = {"display_name", "onboarding_complete"}


# ================== Data model ==================


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    display_name: str
    onboarding_complete: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "onboarding_complete": self.onboarding_complete,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Identity":
        """Build an Identity from a stored payload. Raises ValueError if malformed."""
        if not isinstance(data, dict):
            raise ValueError("identity payload is not an object")
        ident = data.get("id")
        email = data.get("email")
        name = data.get("display_name")
        onboarded = data.get("onboarding_complete", False)
        if not isinstance(ident, str) or not ident:
            raise ValueError("identity id missing")
        if not isinstance(email, str) or not email:
            raise ValueError("identity email missing")
        if not isinstance(name, str):
            raise ValueError("identity display_name is not a string")
        if not isinstance(onboarded, bool):
            raise ValueError("identity onboarding_complete is not a boolean")
        return cls(id=ident, email=email, display_name=name, onboarding_complete=onboarded)


@dataclass(frozen=True)
class Unresolved:
    """initialize() has not finished yet."""


@dataclass(frozen=True)
class Resolved:
    identity: Optional[Identity] = None


SessionState = Union[Unresolved, Resolved]


@dataclass(frozen=True)
class Session:
    state: SessionState = Unresolved()
    in_transition: bool = False

    @property
    def resolved(self) -> bool:
        return isinstance(self.state, Resolved)

    @property
    def current(self) -> Optional[Identity]:
        if isinstance(self.state, Resolved):
            return self.state.identity
        return None

    @property
    def authenticated(self) -> bool:
        return self.current is not None


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def default_display_name(email: str) -> str:
    return email.split("@", 1)[0]


# ================== Auth backend ==================


class AuthBackend(Protocol):
    """
    Remote side of the session operations. Implementations may raise
    TransportError; anything they raise aborts the operation before the
    session or the store changes.
    """

    async def authenticate(self, email: str, credential: str) -> None: ...

    async def create_account(self, email: str, credential: str, display_name: str) -> None: ...

    async def push_update(self, identity: Identity) -> None: ...

    async def end_session(self, identity: Identity) -> None: ...


class LocalAuthBackend:
    """
    No server exists yet: any non-empty credential is accepted.
    `latency` simulates the round trip so callers see real suspend points.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency

    async def _round_trip(self, factor: float = 1.0) -> None:
        await asyncio.sleep(self.latency * factor)

    async def authenticate(self, email: str, credential: str) -> None:
        await self._round_trip()

    async def create_account(self, email: str, credential: str, display_name: str) -> None:
        await self._round_trip()

    async def push_update(self, identity: Identity) -> None:
        await self._round_trip(0.5)

    async def end_session(self, identity: Identity) -> None:
        await self._round_trip(0.5)


# ================== Session manager ==================


class SessionManager:
    """
    Owns the single current Identity and its persisted copy.

    Operations are serialized: a call issued while another one is running
    either waits its turn (policy "queue") or fails with
    OperationInProgressError (policy "reject"). The in-memory value is only
    swapped after the store write succeeded, so readers see either the old
    or the new Identity, never a half-applied one.
    """

    def __init__(
        self,
        store,
        backend: Optional[AuthBackend] = None,
        timeout: Optional[float] = None,
        policy: str = QUEUE,
    ):
        if policy not in (QUEUE, REJECT):
            raise ValueError(f"unknown conflict policy: {policy!r}")
        self.store = store
        self.backend = backend or LocalAuthBackend()
        self.timeout = timeout
        self.policy = policy
        self._state: SessionState = Unresolved()
        self._lock = asyncio.Lock()
        self._init_lock = asyncio.Lock()
        self._pending = 0

    # ---------- read side ----------

    def snapshot(self) -> Session:
        return Session(state=self._state, in_transition=self._pending > 0)

    @property
    def current(self) -> Optional[Identity]:
        return self.snapshot().current

    @property
    def in_transition(self) -> bool:
        return self._pending > 0

    # ---------- lifecycle ----------

    async def initialize(self) -> Session:
        """Resolve the session from the store. Runs once; later calls return the resolved session."""
        if isinstance(self._state, Resolved):
            return self.snapshot()
        async with self._init_lock:
            if isinstance(self._state, Resolved):
                return self.snapshot()
            identity = self._read_identity()
            self._state = Resolved(identity)
            if identity:
                logger.info("Session restored for user %s", identity.id)
            else:
                logger.info("No stored session found")
        return self.snapshot()

    async def establish(self, email: str, credential: str) -> Identity:
        """Sign in. Reuses the stored Identity (and its onboarding progress) for the same email."""
        email = normalize_email(email)
        if not email:
            raise ValidationError("Please enter your email.")
        if not credential:
            raise ValidationError("Please enter your password.")

        async with self._operation("sign in"):
            await self._call_backend(self.backend.authenticate(email, credential))

            stored = self._read_identity()
            if stored and normalize_email(stored.email) == email:
                identity = stored
                logger.info("Signed in existing user %s", identity.id)
            else:
                identity = Identity(
                    id=uuid.uuid4().hex,
                    email=email,
                    display_name=default_display_name(email),
                )
                logger.info("Signed in new user %s", identity.id)

            self._commit(identity)
            return identity

    async def register(self, email: str, credential: str, display_name: str) -> Identity:
        """Sign up. Always starts a fresh Identity, replacing any stored one."""
        email = normalize_email(email)
        display_name = (display_name or "").strip()
        if not email:
            raise ValidationError("Please enter your email.")
        if not display_name:
            raise ValidationError("Please enter your name.")
        if not credential:
            raise ValidationError("Please enter a password.")

        async with self._operation("sign up"):
            await self._call_backend(
                self.backend.create_account(email, credential, display_name)
            )
            identity = Identity(id=uuid.uuid4().hex, email=email, display_name=display_name)
            self._commit(identity)
            logger.info("Registered user %s", identity.id)
            return identity

    async def mutate(self, **fields: Any) -> Identity:
        """Apply display_name and/or onboarding_complete changes to the current Identity."""
        unknown = set(fields) - MUTABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot change: {', '.join(sorted(unknown))}.")

        async with self._operation("update your profile"):
            current = self.current
            if current is None:
                raise NotAuthenticatedError()

            changes: Dict[str, Any] = {}
            if "display_name" in fields:
                name = (fields["display_name"] or "").strip()
                if not name:
                    raise ValidationError("Name cannot be empty.")
                changes["display_name"] = name
            if "onboarding_complete" in fields:
                flag = fields["onboarding_complete"]
                if not isinstance(flag, bool):
                    raise ValidationError("onboarding_complete must be true or false.")
                if current.onboarding_complete and not flag:
                    logger.warning("Rejected onboarding reset for user %s", current.id)
                    raise InvalidTransitionError("Onboarding cannot be undone once completed.")
                changes["onboarding_complete"] = flag

            updated = replace(current, **changes)
            await self._call_backend(self.backend.push_update(updated))
            self._commit(updated)
            logger.info("Updated user %s: %s", updated.id, ", ".join(sorted(changes)) or "no changes")
            return updated

    async def terminate(self) -> None:
        """Sign out. Clears the session and every stored key tied to it; no-op when signed out."""
        async with self._operation("sign out"):
            current = self.current
            if current is None and self.store.get(IDENTITY_KEY) is None:
                self._state = Resolved(None)
                return
            if current is not None:
                await self._call_backend(self.backend.end_session(current))
            # One write for both keys; on failure store and session keep the old user.
            self.store.remove_many((IDENTITY_KEY, WELCOMED_KEY))
            self._state = Resolved(None)
            logger.info("Signed out user %s", current.id if current else "(stored only)")

    # ---------- welcome marker ----------

    def acknowledge_welcome(self) -> bool:
        """True the first time it is called while signed in; the marker is cleared on sign out."""
        if self.current is None:
            return False
        if self.store.get(WELCOMED_KEY):
            return False
        self.store.set(WELCOMED_KEY, "true")
        return True

    # ---------- internals ----------

    @asynccontextmanager
    async def _operation(self, name: str):
        if self.policy == REJECT and self._lock.locked():
            raise OperationInProgressError(name)
        self._pending += 1
        try:
            async with self._lock:
                yield
        finally:
            self._pending -= 1

    async def _call_backend(self, coro) -> None:
        try:
            if self.timeout is None:
                await coro
            else:
                await asyncio.wait_for(coro, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransportError("The server took too long to respond. Please try again.") from e

    def _read_identity(self) -> Optional[Identity]:
        raw = self.store.get(IDENTITY_KEY)
        if raw is None:
            return None
        try:
            return Identity.from_dict(json.loads(raw))
        except ValueError as e:
            logger.warning("Ignoring malformed stored identity: %s", e)
            return None

    def _commit(self, identity: Identity) -> None:
        # Store first: if the write fails the in-memory session is untouched.
        self.store.set(IDENTITY_KEY, json.dumps(identity.to_dict()))
        self._state = Resolved(identity)
