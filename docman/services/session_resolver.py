# docman/services/session_resolver.py
"""Maps the session payload of a request onto a ``User``.

Two payload shapes are accepted. The current one is the internal user id that
Flask-Login keeps under ``_user_id``, with the short-lived access token stored
next to it. The legacy one predates the users table: the whole provider
profile and both tokens are embedded in the session under a configurable key
(``passport`` by default)::

    {"user": {"profile": {"id": "...", ...}, "accessToken": "...", "refreshToken": "..."}}

Legacy payloads are resolved by the profile's provider id and are never
handed out past this module; the caller rewrites the session into the current
shape once it resolves.
"""
from dataclasses import dataclass
from typing import Optional, Union

from flask import current_app

from docman.config.auth_settings import AuthSettings
from docman.services.token_lifecycle import ACCESS_TOKEN_KEY, TOKEN_EXPIRES_KEY

USER_ID_KEY = "_user_id"


@dataclass(frozen=True)
class CurrentSessionPayload:
    principal_id: str
    access_token: Optional[str] = None
    token_expires: Optional[float] = None


@dataclass(frozen=True)
class LegacySessionPayload:
    profile: dict
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


SessionPayload = Union[CurrentSessionPayload, LegacySessionPayload]


def read_session_payload(session, legacy_key: str) -> Optional[SessionPayload]:
    if session.get(USER_ID_KEY):
        return CurrentSessionPayload(
            principal_id=session[USER_ID_KEY],
            access_token=session.get(ACCESS_TOKEN_KEY),
            token_expires=session.get(TOKEN_EXPIRES_KEY),
        )

    legacy = session.get(legacy_key)
    if not isinstance(legacy, dict):
        return None
    embedded = legacy.get("user", legacy)
    if not isinstance(embedded, dict):
        return None
    profile = embedded.get("profile")
    return LegacySessionPayload(
        profile=profile if isinstance(profile, dict) else {},
        access_token=embedded.get("accessToken"),
        refresh_token=embedded.get("refreshToken"),
    )


class SessionPrincipalResolver:
    def __init__(self, settings: AuthSettings, store):
        self.settings = settings
        self.store = store

    def read(self, session) -> Optional[SessionPayload]:
        return read_session_payload(session, self.settings.legacy_session_key)

    def resolve(self, payload: Optional[SessionPayload]):
        """Return the ``User`` behind ``payload`` or ``None`` if the session is unusable."""
        if isinstance(payload, CurrentSessionPayload):
            user = self.store.find_by_id(payload.principal_id)
            token, expires = payload.access_token, payload.token_expires
        elif isinstance(payload, LegacySessionPayload):
            identity_key = payload.profile.get("id")
            if not identity_key:
                current_app.logger.warning("⚠️ Legacy session without a profile id; ignoring it")
                return None
            user = self.store.find_by_identity_key(identity_key)
            token, expires = payload.access_token, None
        else:
            return None

        if user is None:
            current_app.logger.info("🔍 Session refers to an unknown user; treating it as logged out")
            return None

        user.access_token = token
        user.token_expires = expires
        return user
