# docman/routes/auth.py

import uuid

from flask import Blueprint, request, session, redirect, url_for, current_app
from flask_login import login_user, logout_user
from docman.controllers.auth_controller import (
    get_auth_settings,
    get_lifecycle_manager,
    build_authorization_url,
    exchange_code_for_token,
    get_user_profile,
    normalize_profile,
)
from docman.errors import MissingCredentialError
from docman.services.token_lifecycle import ACCESS_TOKEN_KEY, TOKEN_EXPIRES_KEY

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.route("/login")
def login():
    force_consent = request.args.get("force_consent") == "1"
    state = "int-" + uuid.uuid4().hex
    session["ms_state"] = state
    session["consent_forced"] = force_consent

    if not get_auth_settings().request_scopes:
        current_app.logger.warning("⚠️ No scopes defined for Microsoft OAuth.")
        return "No scopes configured", 500

    prompt = get_lifecycle_manager().login_prompt(force_consent)
    auth_url = build_authorization_url(state, prompt)
    current_app.logger.debug("🌐 Redirecting to Microsoft Login (prompt=%s)", prompt)
    return redirect(auth_url)


@auth_bp.route("/callback")
def callback():
    incoming = request.args.get("state")
    expected = session.pop("ms_state", None)
    if not incoming or incoming != expected:
        return "Invalid state", 400

    if "error" in request.args:
        return f"Authentication failed: {request.args.get('error_description', request.args['error'])}", 400

    code = request.args.get("code")
    if not code:
        return "Missing authorization code", 400

    # exchange code for tokens
    result = exchange_code_for_token(code)
    if "access_token" not in result:
        return f"Authentication failed: {result.get('error_description')}", 400

    try:
        profile = normalize_profile(get_user_profile(result), result)
    except ValueError as e:
        return f"Authentication failed: {e}", 400

    manager = get_lifecycle_manager()
    outcome = manager.complete_authentication(profile, result)
    consent_forced = session.pop("consent_forced", False)

    if outcome.requires_reconsent:
        logout_user()
        session.clear()
        if consent_forced:
            current_app.logger.error(
                "❌ Consent was forced but still no refresh token for user %s", outcome.user.id
            )
            raise MissingCredentialError(
                "OneDrive offline access was not granted. Please log in again and accept all permissions."
            )
        current_app.logger.info("🔁 Restarting login with forced consent for user %s", outcome.user.id)
        return redirect(url_for("auth.login", force_consent=1))

    # log in
    session.pop(get_auth_settings().legacy_session_key, None)
    login_user(outcome.user)
    session[ACCESS_TOKEN_KEY] = outcome.access_token
    session[TOKEN_EXPIRES_KEY] = outcome.token_expires
    current_app.logger.info("✅ User %s logged in", outcome.user.id)
    return redirect(url_for("main.index"))


@auth_bp.route("/logout")
def logout():
    logout_user()
    session.clear()
    return redirect(url_for("auth.login"))
