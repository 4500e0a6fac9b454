import time
from datetime import datetime
from urllib.parse import quote

import requests
from flask import current_app
from msal import ConfidentialClientApplication
from requests.exceptions import RequestException

from docman.config.auth_settings import AuthSettings
from docman.errors import UpstreamError

# Graph rejects simple PUT uploads above 4 MiB
SIMPLE_UPLOAD_LIMIT = 4 * 1024 * 1024
# Upload-session chunks must be a multiple of 320 KiB
UPLOAD_CHUNK_SIZE = 320 * 1024 * 32
DOWNLOAD_CHUNK_SIZE = 64 * 1024


class OneDriveServiceError(UpstreamError):
    """Raised when Graph API operations fail or token refresh errors occur."""
    message = "OneDrive request failed"


class MicrosoftGraphService:
    BASE_URL = "https://graph.microsoft.com/v1.0"

    def __init__(
            self,
            settings: AuthSettings,
            access_token=None,
            refresh_token=None,
            token_expires=None,
            user_id=None,
            on_token_refresh=None,
    ):
        self.settings = settings
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.user_id = user_id
        self.on_token_refresh = on_token_refresh
        if isinstance(token_expires, datetime):
            self.token_expires = token_expires.timestamp()
        else:
            self.token_expires = float(token_expires or 0)
        self._msal_app = None
        self._token_checked = False
        self.headers = {}

        current_app.logger.debug(
            "🔧 MS Graph init: user_id=%s, expires=%.0f (now=%.0f)",
            self.user_id, self.token_expires, time.time()
        )

    @property
    def msal_app(self) -> ConfidentialClientApplication:
        # built lazily: construction performs authority discovery over the network
        if self._msal_app is None:
            self._msal_app = ConfidentialClientApplication(
                client_id=self.settings.client_id,
                client_credential=self.settings.client_secret,
                authority=self.settings.authority,
            )
        return self._msal_app

    def _ensure_token(self):
        if self._token_checked:
            return
        self._token_checked = True

        now = time.time()
        usable = bool(self.access_token) and now < self.token_expires
        if not usable and not self.refresh_token:
            raise OneDriveServiceError("Access token expired and no refresh token is available")

        if self.refresh_token and (not usable or now >= self.token_expires - self.settings.token_refresh_margin):
            scopes = self.settings.request_scopes
            current_app.logger.debug("🔁 Refreshing token, scopes=%r", scopes)
            try:
                result = self.msal_app.acquire_token_by_refresh_token(
                    self.refresh_token, scopes=scopes
                )
            except (ValueError, RequestException) as e:
                current_app.logger.error("❌ Refresh-token error: %s", e)
                result = {"error": "refresh_error", "error_description": "Token refresh failed"}

            if result and "access_token" in result:
                self.access_token = result["access_token"]
                rotated = result.get("refresh_token")
                if rotated:
                    self.refresh_token = rotated
                self.token_expires = now + int(result.get("expires_in", 3600))
                current_app.logger.debug("✅ Token refreshed; expires at %.0f", self.token_expires)

                if self.on_token_refresh is not None:
                    self.on_token_refresh(self.access_token, rotated, self.token_expires)
            elif usable:
                current_app.logger.warning(
                    "⚠️ Token refresh failed (%s); using the current token for %.0f more seconds",
                    (result or {}).get("error"), self.token_expires - now
                )
            else:
                current_app.logger.error("❌ Token refresh failed: %s", (result or {}).get("error"))
                raise OneDriveServiceError(
                    (result or {}).get("error_description", "Token refresh failed")
                )
        else:
            current_app.logger.debug(
                "🧠 Token still valid for %.0f seconds", self.token_expires - now
            )

        self.headers = {"Authorization": f"Bearer {self.access_token}"}

    def ensure_valid_token(self):
        self._token_checked = False
        self._ensure_token()

    @staticmethod
    def _send(method: str, url: str, **kwargs) -> requests.Response:
        try:
            return getattr(requests, method)(url, **kwargs)
        except RequestException as e:
            current_app.logger.error("❌ Graph %s %s unreachable: %s", method.upper(), url, e)
            raise OneDriveServiceError(f"OneDrive unreachable: {e}") from e

    def get_user_info(self) -> dict:
        self._ensure_token()
        resp = self._send("get", f"{self.BASE_URL}/me", headers=self.headers)
        if resp.status_code != 200:
            raise OneDriveServiceError(f"Profile lookup failed [{resp.status_code}]: {resp.text}")
        return resp.json()

    def _item_path(self, filename: str) -> str:
        folder = self.settings.onedrive_folder.strip("/")
        path = f"{folder}/{filename}" if folder else filename
        return quote(path)

    def upload_file(self, filename: str, content: bytes, content_type: str = None) -> dict:
        """
        Create a new drive item from ``content``; returns the Graph driveItem.
        Name clashes are resolved by OneDrive renaming the new item.
        """
        self._ensure_token()
        if len(content) > SIMPLE_UPLOAD_LIMIT:
            return self._upload_in_session(filename, content)

        url = f"{self.BASE_URL}/me/drive/root:/{self._item_path(filename)}:/content"
        headers = dict(self.headers)
        headers["Content-Type"] = content_type or "application/octet-stream"
        resp = self._send(
            "put",
            url,
            headers=headers,
            params={"@microsoft.graph.conflictBehavior": "rename"},
            data=content
        )
        if resp.status_code not in (200, 201):
            raise OneDriveServiceError(
                f"Upload failed [{resp.status_code}]: {resp.text}"
            )
        return resp.json()

    def _upload_in_session(self, filename: str, content: bytes) -> dict:
        url = f"{self.BASE_URL}/me/drive/root:/{self._item_path(filename)}:/createUploadSession"
        resp = self._send(
            "post",
            url,
            headers=self.headers,
            json={"item": {"@microsoft.graph.conflictBehavior": "rename"}}
        )
        if resp.status_code != 200:
            raise OneDriveServiceError(
                f"Create upload session failed [{resp.status_code}]: {resp.text}"
            )
        upload_url = resp.json()["uploadUrl"]

        total = len(content)
        start = 0
        while start < total:
            chunk = content[start:start + UPLOAD_CHUNK_SIZE]
            end = start + len(chunk) - 1
            # the pre-authenticated upload URL must not receive the bearer token
            try:
                resp = self._send(
                    "put",
                    upload_url,
                    headers={
                        "Content-Length": str(len(chunk)),
                        "Content-Range": f"bytes {start}-{end}/{total}",
                    },
                    data=chunk
                )
            except OneDriveServiceError:
                self._cancel_upload_session(upload_url)
                raise
            if resp.status_code in (200, 201):
                return resp.json()
            if resp.status_code != 202:
                self._cancel_upload_session(upload_url)
                raise OneDriveServiceError(
                    f"Chunk upload failed at byte {start} [{resp.status_code}]: {resp.text}"
                )
            start = end + 1

        raise OneDriveServiceError("Upload session ended without a drive item")

    def _cancel_upload_session(self, upload_url: str) -> None:
        try:
            self._send("delete", upload_url)
        except OneDriveServiceError as e:
            current_app.logger.warning("⚠️ Could not cancel upload session: %s", e)

    def open_file_stream(self, file_id: str) -> requests.Response:
        """
        Open the raw content of a file as a streaming response.
        The caller is responsible for closing it.
        """
        self._ensure_token()
        resp = self._send(
            "get",
            f"{self.BASE_URL}/me/drive/items/{file_id}/content",
            headers=self.headers,
            stream=True
        )
        if resp.status_code != 200:
            resp.close()
            raise OneDriveServiceError(f"Download failed [{resp.status_code}]")
        return resp

    def delete_file(self, file_id: str) -> None:
        self._ensure_token()
        resp = self._send(
            "delete",
            f"{self.BASE_URL}/me/drive/items/{file_id}",
            headers=self.headers
        )
        if resp.status_code == 404:
            current_app.logger.debug("🗑️ Drive item %s already gone", file_id)
            return
        if resp.status_code != 204:
            raise OneDriveServiceError(f"Delete failed [{resp.status_code}]: {resp.text}")
