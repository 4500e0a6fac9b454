# docman/utils/auth_utils.py
from flask import current_app, jsonify, redirect, request, session, url_for
from flask_login import login_user

from docman.errors import UnauthenticatedError
from docman.services.session_resolver import CurrentSessionPayload, LegacySessionPayload
from docman.services.token_lifecycle import ACCESS_TOKEN_KEY, TOKEN_EXPIRES_KEY


def install_session_loaders(login_manager, resolver):
    """Wire the session resolver into Flask-Login."""

    @login_manager.user_loader
    def load_user(user_id):
        return resolver.resolve(CurrentSessionPayload(
            principal_id=user_id,
            access_token=session.get(ACCESS_TOKEN_KEY),
            token_expires=session.get(TOKEN_EXPIRES_KEY),
        ))

    @login_manager.request_loader
    def load_legacy_user(_request):
        payload = resolver.read(session)
        if not isinstance(payload, LegacySessionPayload):
            return None

        legacy_key = resolver.settings.legacy_session_key
        user = resolver.resolve(payload)
        session.pop(legacy_key, None)
        if user is None:
            return None

        # a credential already on file is newer than the one carried by the old session
        if not user.refresh_token:
            resolver.store.update_credential(user, payload.refresh_token)

        # rewrite the session in the current shape
        login_user(user)
        session[ACCESS_TOKEN_KEY] = payload.access_token
        session[TOKEN_EXPIRES_KEY] = None
        current_app.logger.info("🔁 Upgraded legacy session for user %s", user.id)
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        if request.path.startswith("/api/"):
            return jsonify(UnauthenticatedError().to_dict()), 401
        return redirect(url_for("auth.login"))
