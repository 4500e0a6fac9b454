# docman/services/credential_store.py
from flask import current_app
from sqlalchemy.exc import IntegrityError

from docman.models import db, User

PROFILE_FIELDS = {
    "email": "email",
    "display_name": "name",
    "first_name": "first_name",
    "last_name": "last_name",
    "avatar_url": "avatar_url",
}


class CredentialStore:
    """Persistence of principals and their long-lived OneDrive credential."""

    def find_by_identity_key(self, identity_key):
        if not identity_key:
            return None
        return User.query.filter_by(ms_id=str(identity_key)).first()

    def find_by_id(self, user_id):
        try:
            return db.session.get(User, int(user_id))
        except (TypeError, ValueError):
            return None

    def find_all_by_email(self, email) -> list:
        if not email:
            return []
        return (
            User.query
            .filter(db.func.lower(User.email) == email.strip().lower())
            .order_by(User.id)
            .all()
        )

    def find_by_email(self, email):
        matches = self.find_all_by_email(email)
        return matches[0] if matches else None

    def create(self, profile: dict, refresh_token=None) -> User:
        user = User(ms_id=str(profile["identity_key"]), refresh_token=refresh_token or None)
        self._apply_profile(user, profile)
        db.session.add(user)
        db.session.commit()
        current_app.logger.info("👋 Created new user: %s", user.email or user.ms_id)
        return user

    def update_credential(self, user: User, refresh_token) -> User:
        # An empty token never replaces a stored one
        if refresh_token and refresh_token != user.refresh_token:
            user.refresh_token = refresh_token
            db.session.commit()
            current_app.logger.debug("🔁 Stored new refresh token for user %s", user.id)
        return user

    def upsert(self, profile: dict, refresh_token=None):
        """Create or refresh the principal behind ``profile``.

        Returns ``(user, previous_refresh_token)`` so the caller can evaluate
        the credential transition against what was on file before the login.
        """
        user = self.find_by_identity_key(profile["identity_key"])
        if user is None:
            try:
                return self.create(profile, refresh_token), None
            except IntegrityError:
                # Concurrent first login for the same identity won the insert
                db.session.rollback()
                user = self.find_by_identity_key(profile["identity_key"])
                if user is None:
                    raise

        previous = user.refresh_token
        self._apply_profile(user, profile)
        if refresh_token:
            user.refresh_token = refresh_token
        db.session.commit()
        current_app.logger.debug("🔁 Refreshed profile for user: %s", user.email or user.ms_id)
        return user, previous

    @staticmethod
    def _apply_profile(user: User, profile: dict):
        for key, column in PROFILE_FIELDS.items():
            value = profile.get(key)
            if value:
                setattr(user, column, value)
