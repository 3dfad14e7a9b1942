"""
Route authorization: which part of the app a visitor may see.

decide_route() is a pure function of the requested path and a Session
snapshot. It never raises for unknown paths; those resolve to not_found,
but only after the redirect rules for the current area had their turn.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

from .logic_session import Session

HOME_PATH = "/"
CHAT_PATH = "/chat"
SETTINGS_PATH = "/settings"
ONBOARDING_PATH = "/onboarding"
SIGNIN_PATH = "/auth/signin"
SIGNUP_PATH = "/auth/signup"

AUTH_PREFIX = "/auth"
AUTH_PATHS = frozenset({SIGNIN_PATH, SIGNUP_PATH})
APP_PATHS = frozenset({HOME_PATH, CHAT_PATH, SETTINGS_PATH})
KNOWN_PATHS = AUTH_PATHS | APP_PATHS | {ONBOARDING_PATH}

ALLOW = "allow"
REDIRECT = "redirect"
LOADING = "loading"
NOT_FOUND = "not_found"


class Area(str, Enum):
    LOADING = "loading"
    UNAUTHENTICATED = "unauthenticated"
    ONBOARDING = "onboarding"
    AUTHENTICATED = "authenticated"


@dataclass(frozen=True)
class RouteDecision:
    kind: str
    path: str
    area: Area

    @property
    def allowed(self) -> bool:
        return self.kind == ALLOW


def normalize_path(path: Optional[str]) -> str:
    """Drop query/fragment and trailing slashes; empty means home."""
    raw = (path or "").strip()
    cleaned = urlsplit(raw).path if raw else ""
    if not cleaned.startswith("/"):
        cleaned = "/" + cleaned
    cleaned = cleaned.rstrip("/")
    return cleaned or HOME_PATH


def _is_auth_path(path: str) -> bool:
    return path == AUTH_PREFIX or path.startswith(AUTH_PREFIX + "/")


def area_for(session: Session) -> Area:
    if not session.resolved:
        return Area.LOADING
    identity = session.current
    if identity is None:
        return Area.UNAUTHENTICATED
    if not identity.onboarding_complete:
        return Area.ONBOARDING
    return Area.AUTHENTICATED


def decide_route(path: Optional[str], session: Session) -> RouteDecision:
    path = normalize_path(path)
    area = area_for(session)

    if area is Area.LOADING:
        return RouteDecision(LOADING, path, area)

    if area is Area.UNAUTHENTICATED:
        if path in AUTH_PATHS:
            return RouteDecision(ALLOW, path, area)
        return RouteDecision(REDIRECT, SIGNIN_PATH, area)

    if area is Area.ONBOARDING:
        if path == ONBOARDING_PATH:
            return RouteDecision(ALLOW, path, area)
        if path in APP_PATHS or _is_auth_path(path):
            return RouteDecision(REDIRECT, ONBOARDING_PATH, area)
        return RouteDecision(NOT_FOUND, path, area)

    if path in APP_PATHS:
        return RouteDecision(ALLOW, path, area)
    if path == ONBOARDING_PATH or _is_auth_path(path):
        return RouteDecision(REDIRECT, HOME_PATH, area)
    return RouteDecision(NOT_FOUND, path, area)


def resolve_route(path: Optional[str], session: Session) -> RouteDecision:
    """Follow the redirect (if any) and return what should actually be rendered."""
    decision = decide_route(path, session)
    if decision.kind != REDIRECT:
        return decision
    # Redirect targets are always reachable in their own area.
    return decide_route(decision.path, session)
