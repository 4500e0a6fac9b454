# docman/controllers/auth_controller.py
import time

from flask import current_app
from msal import ConfidentialClientApplication

from docman.config.auth_settings import AuthSettings
from docman.services.microsoft_graph import MicrosoftGraphService

GRAPH_PHOTO_URL = "https://graph.microsoft.com/v1.0/users/{id}/photo/$value"


def get_auth_settings() -> AuthSettings:
    return current_app.extensions["docman.auth_settings"]


def get_lifecycle_manager():
    return current_app.extensions["docman.token_lifecycle"]


def get_msal_app() -> ConfidentialClientApplication:
    settings = get_auth_settings()
    return ConfidentialClientApplication(
        client_id=settings.client_id,
        client_credential=settings.client_secret,
        authority=settings.authority,
    )


def build_authorization_url(state: str, prompt: str) -> str:
    settings = get_auth_settings()
    return get_msal_app().get_authorization_request_url(
        scopes=settings.request_scopes,
        redirect_uri=settings.redirect_uri,
        prompt=prompt,
        state=state
    )


def exchange_code_for_token(code: str) -> dict:
    settings = get_auth_settings()
    return get_msal_app().acquire_token_by_authorization_code(
        code,
        scopes=settings.request_scopes,
        redirect_uri=settings.redirect_uri
    )


def get_user_profile(token_result: dict) -> dict:
    svc = MicrosoftGraphService(
        settings=get_auth_settings(),
        access_token=token_result["access_token"],
        token_expires=time.time() + int(token_result.get("expires_in", 3600)),
    )
    return svc.get_user_info()


def normalize_profile(graph_profile: dict, token_result: dict) -> dict:
    """Flatten the Graph ``/me`` payload and ID-token claims into the fields we keep."""
    claims = token_result.get("id_token_claims") or {}
    identity_key = claims.get("oid") or graph_profile.get("id")
    if not identity_key:
        raise ValueError("Identity provider returned no user id")

    email = (
        graph_profile.get("mail")
        or graph_profile.get("userPrincipalName")
        or claims.get("preferred_username")
        or ""
    ).strip()
    return {
        "identity_key": identity_key,
        "email": email or None,
        "display_name": graph_profile.get("displayName") or claims.get("name"),
        "first_name": graph_profile.get("givenName"),
        "last_name": graph_profile.get("surname"),
        "avatar_url": GRAPH_PHOTO_URL.format(id=graph_profile["id"]) if graph_profile.get("id") else None,
    }
