import time

import pytest
from flask import session

from docman.errors import MissingCredentialError
from docman.models import db, User
from docman.services.token_lifecycle import (
    ACCESS_TOKEN_KEY,
    TOKEN_EXPIRES_KEY,
    CredentialState,
    transition,
)

PROFILE = {
    "identity_key": "oid-alice",
    "email": "alice@example.com",
    "display_name": "Alice Example",
    "first_name": "Alice",
    "last_name": "Example",
    "avatar_url": None,
}


@pytest.mark.parametrize("state, stored, incoming, expected", [
    (CredentialState.PENDING, None, "rt-new", CredentialState.HAS_CREDENTIAL),
    (CredentialState.PENDING, "rt-old", None, CredentialState.HAS_CREDENTIAL),
    (CredentialState.PENDING, "rt-old", "rt-new", CredentialState.HAS_CREDENTIAL),
    (CredentialState.PENDING, None, None, CredentialState.NO_CREDENTIAL),
    (CredentialState.NO_CREDENTIAL, None, None, CredentialState.NO_CREDENTIAL),
    (CredentialState.NO_CREDENTIAL, None, "rt-new", CredentialState.HAS_CREDENTIAL),
    (CredentialState.HAS_CREDENTIAL, "rt-old", None, CredentialState.HAS_CREDENTIAL),
])
def test_transition(state, stored, incoming, expected):
    assert transition(state, stored, incoming) is expected


def test_user_credential_state_follows_stored_token():
    assert User(ms_id="a", refresh_token="rt").credential_state is CredentialState.HAS_CREDENTIAL
    assert User(ms_id="b").credential_state is CredentialState.NO_CREDENTIAL


def _manager(app):
    return app.extensions["docman.token_lifecycle"]


def test_first_login_with_refresh_token_persists_it(app_ctx):
    outcome = _manager(app_ctx).complete_authentication(
        PROFILE, {"access_token": "at-1", "refresh_token": "rt-1", "expires_in": 3600}
    )

    assert outcome.state is CredentialState.HAS_CREDENTIAL
    assert not outcome.requires_reconsent
    assert outcome.access_token == "at-1"
    assert outcome.token_expires > time.time()
    assert db.session.get(User, outcome.user.id).refresh_token == "rt-1"


def test_login_without_new_refresh_token_keeps_stored_one(app_ctx, make_user):
    user_id = make_user(ms_id="oid-alice", refresh_token="rt-stored")

    outcome = _manager(app_ctx).complete_authentication(PROFILE, {"access_token": "at-2"})

    assert outcome.state is CredentialState.HAS_CREDENTIAL
    assert outcome.user.id == user_id
    assert db.session.get(User, user_id).refresh_token == "rt-stored"


def test_login_without_any_refresh_token_requires_reconsent(app_ctx, make_user):
    make_user(ms_id="oid-alice", refresh_token=None)

    outcome = _manager(app_ctx).complete_authentication(PROFILE, {"access_token": "at-3"})

    assert outcome.state is CredentialState.NO_CREDENTIAL
    assert outcome.requires_reconsent


def test_login_prompt(app_ctx):
    manager = _manager(app_ctx)
    assert manager.login_prompt(True) == "consent"
    assert manager.login_prompt(False) == "select_account"


def test_storage_for_refuses_user_without_credential(app_ctx, drive, make_user):
    user = db.session.get(User, make_user(refresh_token=None))

    with pytest.raises(MissingCredentialError) as excinfo:
        _manager(app_ctx).storage_for(user)

    assert excinfo.value.code == "MISSING_REFRESH_TOKEN"
    assert excinfo.value.status_code == 401
    assert drive.factory_calls == []


def test_storage_for_builds_client_and_persists_rotated_token(app, drive, make_user):
    user_id = make_user(refresh_token="rt-old")

    with app.test_request_context():
        user = db.session.get(User, user_id)
        user.access_token = "at-old"
        user.token_expires = time.time() + 60

        _manager(app).storage_for(user)
        kwargs = drive.factory_calls[-1]
        assert kwargs["refresh_token"] == "rt-old"
        assert kwargs["access_token"] == "at-old"
        assert kwargs["user_id"] == user_id

        kwargs["on_token_refresh"]("at-new", "rt-rotated", 12345.0)

        assert session[ACCESS_TOKEN_KEY] == "at-new"
        assert session[TOKEN_EXPIRES_KEY] == 12345.0
        assert db.session.get(User, user_id).refresh_token == "rt-rotated"


def test_refresh_without_rotation_keeps_stored_token(app, drive, make_user):
    user_id = make_user(refresh_token="rt-old")

    with app.test_request_context():
        user = db.session.get(User, user_id)
        _manager(app).storage_for(user)
        drive.factory_calls[-1]["on_token_refresh"]("at-new", None, 1.0)

        assert db.session.get(User, user_id).refresh_token == "rt-old"
