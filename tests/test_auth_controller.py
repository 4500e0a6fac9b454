import pytest

from docman.controllers.auth_controller import normalize_profile


def test_oid_claim_is_the_identity_key():
    profile = normalize_profile(
        {"id": "graph-id", "displayName": "Alice", "mail": " alice@example.com "},
        {"id_token_claims": {"oid": "oid-alice"}},
    )

    assert profile["identity_key"] == "oid-alice"
    assert profile["email"] == "alice@example.com"
    assert profile["display_name"] == "Alice"
    assert profile["avatar_url"].endswith("/users/graph-id/photo/$value")


def test_email_falls_back_to_principal_name_then_claims():
    from_upn = normalize_profile({"id": "g", "userPrincipalName": "a@contoso.com"}, {})
    from_claims = normalize_profile({"id": "g"}, {"id_token_claims": {"preferred_username": "a@claims.com"}})
    nothing = normalize_profile({"id": "g"}, {})

    assert from_upn["email"] == "a@contoso.com"
    assert from_upn["identity_key"] == "g"
    assert from_claims["email"] == "a@claims.com"
    assert nothing["email"] is None


def test_missing_identity_is_rejected():
    with pytest.raises(ValueError):
        normalize_profile({"displayName": "Nobody"}, {})
