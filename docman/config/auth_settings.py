# docman/config/auth_settings.py
from dataclasses import dataclass
from typing import Mapping, Tuple

RESERVED_SCOPES = frozenset({"openid", "profile", "offline_access"})


@dataclass(frozen=True)
class AuthSettings:
    """Auth/session configuration handed to the resolver, the token manager and the Graph client."""

    client_id: str
    client_secret: str
    authority: str
    redirect_uri: str
    scopes: Tuple[str, ...]
    login_prompt: str = "select_account"
    legacy_session_key: str = "passport"
    token_refresh_margin: int = 300
    onedrive_folder: str = "DocumentManager"

    @classmethod
    def from_config(cls, config: Mapping) -> "AuthSettings":
        return cls(
            client_id=config.get("CLIENT_ID") or "",
            client_secret=config.get("CLIENT_SECRET") or "",
            authority=config["AUTHORITY"],
            redirect_uri=config["REDIRECT_URI"],
            scopes=tuple(config.get("SCOPE", "").split()),
            login_prompt=config.get("LOGIN_PROMPT", "select_account"),
            legacy_session_key=config.get("LEGACY_SESSION_KEY", "passport"),
            token_refresh_margin=int(config.get("TOKEN_REFRESH_MARGIN", 300)),
            onedrive_folder=config.get("ONEDRIVE_FOLDER", "DocumentManager"),
        )

    @property
    def request_scopes(self) -> list:
        # MSAL adds the reserved OIDC scopes itself and rejects them if passed
        return [s for s in self.scopes if s not in RESERVED_SCOPES]
