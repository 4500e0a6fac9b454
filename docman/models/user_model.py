from datetime import datetime, timezone
from flask_login import UserMixin
from docman.models import db
from docman.services.token_lifecycle import CredentialState, transition


def _utcnow():
    return datetime.now(timezone.utc)


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id               = db.Column(db.Integer, primary_key=True)
    ms_id            = db.Column(db.String(64), unique=True, nullable=False)
    email            = db.Column(db.String(255), index=True)
    name             = db.Column(db.String(255))
    first_name       = db.Column(db.String(120))
    last_name        = db.Column(db.String(120))
    avatar_url       = db.Column(db.String(1024))
    refresh_token    = db.Column(db.Text, nullable=True)
    created_at       = db.Column(db.DateTime, default=_utcnow, nullable=False)

    documents = db.relationship("Document", back_populates="owner", lazy="dynamic")

    # Session-scoped, never persisted
    access_token = None
    token_expires = None

    def __repr__(self):
        return f"<User {self.email or self.ms_id}>"

    @property
    def credential_state(self):
        return transition(CredentialState.PENDING, self.refresh_token)

    def to_profile(self) -> dict:
        return {
            "id": self.id,
            "identity_key": self.ms_id,
            "email": self.email,
            "display_name": self.name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "avatar_url": self.avatar_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "credential_state": self.credential_state.value,
        }
