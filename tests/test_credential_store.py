from docman.models import User
from docman.services.credential_store import CredentialStore


def _profile(**overrides):
    profile = {
        "identity_key": "oid-bob",
        "email": "bob@example.com",
        "display_name": "Bob",
        "first_name": "Bob",
        "last_name": "Builder",
        "avatar_url": "https://graph.microsoft.com/v1.0/users/oid-bob/photo/$value",
    }
    profile.update(overrides)
    return profile


def test_upsert_creates_then_updates_same_record(app_ctx):
    store = CredentialStore()

    first, previous = store.upsert(_profile(), "rt-1")
    assert previous is None

    second, previous = store.upsert(_profile(display_name="Robert", email="robert@example.com"), "rt-2")

    assert second.id == first.id
    assert previous == "rt-1"
    assert User.query.filter_by(ms_id="oid-bob").count() == 1
    assert second.name == "Robert"
    assert second.email == "robert@example.com"
    assert second.refresh_token == "rt-2"


def test_upsert_without_token_keeps_stored_credential(app_ctx):
    store = CredentialStore()
    store.upsert(_profile(), "rt-1")

    user, previous = store.upsert(_profile(), None)

    assert previous == "rt-1"
    assert user.refresh_token == "rt-1"


def test_upsert_does_not_blank_profile_fields(app_ctx):
    store = CredentialStore()
    store.upsert(_profile(), "rt-1")

    user, _ = store.upsert(_profile(first_name=None, last_name=""), None)

    assert user.first_name == "Bob"
    assert user.last_name == "Builder"


def test_update_credential_ignores_empty_token(app_ctx):
    store = CredentialStore()
    user = store.create(_profile(), "rt-1")

    store.update_credential(user, None)
    assert user.refresh_token == "rt-1"

    store.update_credential(user, "rt-2")
    assert store.find_by_identity_key("oid-bob").refresh_token == "rt-2"


def test_lookups(app_ctx):
    store = CredentialStore()
    user = store.create(_profile(), None)

    assert store.find_by_id(user.id) is user
    assert store.find_by_id(str(user.id)) is user
    assert store.find_by_id("not-a-number") is None
    assert store.find_by_id(None) is None
    assert store.find_by_email("BOB@example.com ") is user
    assert store.find_by_identity_key("oid-missing") is None
    assert store.find_by_identity_key(None) is None
