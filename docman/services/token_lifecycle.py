# docman/services/token_lifecycle.py
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from flask import current_app, session

from docman.config.auth_settings import AuthSettings
from docman.errors import MissingCredentialError
from docman.services.microsoft_graph import MicrosoftGraphService

ACCESS_TOKEN_KEY = "access_token"
TOKEN_EXPIRES_KEY = "token_expires"


class CredentialState(str, Enum):
    PENDING = "pending"
    NO_CREDENTIAL = "no_credential"
    HAS_CREDENTIAL = "has_credential"


def transition(state: CredentialState, stored_refresh_token, incoming_refresh_token=None) -> CredentialState:
    """Single transition function of the credential state machine."""
    if incoming_refresh_token:
        return CredentialState.HAS_CREDENTIAL
    if state is CredentialState.HAS_CREDENTIAL:
        return state
    if state is CredentialState.PENDING and stored_refresh_token:
        return CredentialState.HAS_CREDENTIAL
    return CredentialState.NO_CREDENTIAL


@dataclass
class AuthenticationOutcome:
    user: object
    state: CredentialState
    access_token: str
    token_expires: float

    @property
    def requires_reconsent(self) -> bool:
        return self.state is CredentialState.NO_CREDENTIAL


class TokenLifecycleManager:
    def __init__(self, settings: AuthSettings, store, storage_factory=MicrosoftGraphService):
        self.settings = settings
        self.store = store
        self.storage_factory = storage_factory

    def complete_authentication(self, profile: dict, token_result: dict) -> AuthenticationOutcome:
        incoming = token_result.get("refresh_token")
        user, previous = self.store.upsert(profile, incoming)
        state = transition(CredentialState.PENDING, previous, incoming)

        if state is CredentialState.NO_CREDENTIAL:
            current_app.logger.warning(
                "⚠️ No refresh token on file or returned for user %s; consent must be re-requested", user.id
            )
        elif not incoming:
            current_app.logger.debug("🧠 Reusing stored refresh token for user %s", user.id)

        expires = time.time() + int(token_result.get("expires_in", 3600))
        user.access_token = token_result.get("access_token")
        user.token_expires = expires
        return AuthenticationOutcome(user, state, user.access_token, expires)

    def login_prompt(self, force_consent: bool) -> str:
        return "consent" if force_consent else self.settings.login_prompt

    def require_credential(self, user):
        if user.credential_state is not CredentialState.HAS_CREDENTIAL:
            current_app.logger.info("🔒 User %s has no refresh token; storage call refused", user.id)
            raise MissingCredentialError()

    def storage_for(self, user):
        """Storage client for ``user``; fails fast without a long-lived credential."""
        self.require_credential(user)

        def on_token_refresh(access_token: str, refresh_token: Optional[str], expires_at: float):
            self.store.update_credential(user, refresh_token)
            user.access_token = access_token
            user.token_expires = expires_at
            session[ACCESS_TOKEN_KEY] = access_token
            session[TOKEN_EXPIRES_KEY] = expires_at

        return self.storage_factory(
            settings=self.settings,
            access_token=user.access_token,
            refresh_token=user.refresh_token,
            token_expires=user.token_expires,
            user_id=user.id,
            on_token_refresh=on_token_refresh,
        )
