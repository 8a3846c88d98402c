"""Firebase Authentication over the Identity Toolkit REST API.

Endpoints used (all ``POST https://identitytoolkit.googleapis.com/v1/accounts:<method>?key=<API key>``):

  signUp              email/password registration
  signInWithPassword  email/password sign-in
  signInWithIdp       Google sign-in with a Google ID token
  lookup              resolve an ID token to its account
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from booking_assistant.pii import redact_pii

from .base import IdentityError, IdentityProvider, IdentityUser

log = logging.getLogger("booking_assistant.identity.firebase")

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"


class FirebaseIdentityProvider(IdentityProvider):
    """IdentityProvider backed by Firebase Authentication."""

    def __init__(
        self,
        api_key: str,
        client: httpx.AsyncClient | None = None,
        base_url: str = IDENTITY_TOOLKIT_URL,
    ) -> None:
        super().__init__()
        if not api_key:
            raise ValueError(
                "Firebase API key must be provided (FIREBASE_API_KEY)."
            )
        self._api_key = api_key
        self._client = client
        self._base_url = base_url.rstrip("/")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post(self, method: str, body: dict[str, Any]) -> dict[str, Any]:
        url = f"{self._base_url}/accounts:{method}"
        params = {"key": self._api_key}
        try:
            if self._client is not None:
                resp = await self._client.post(url, params=params, json=body)
            else:
                async with httpx.AsyncClient(timeout=15) as client:
                    resp = await client.post(url, params=params, json=body)
        except httpx.HTTPError as e:
            log.error("Firebase %s request failed: %s", method, e)
            raise IdentityError("NETWORK_ERROR", f"Identity provider unreachable: {e}") from e

        if resp.status_code != 200:
            raise self._error_from_response(method, resp)
        return resp.json()

    @staticmethod
    def _error_from_response(method: str, resp: httpx.Response) -> IdentityError:
        try:
            message = resp.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            message = f"HTTP_{resp.status_code}"
        # Firebase messages look like "WEAK_PASSWORD : Password should be ..."
        code = message.split(" : ", 1)[0].strip()
        log.warning("Firebase %s rejected: %s", method, code)
        return IdentityError(code, message)

    @staticmethod
    def _user_from_payload(data: dict[str, Any], provider: str) -> IdentityUser:
        return IdentityUser(
            uid=data.get("localId", ""),
            email=data.get("email", ""),
            display_name=data.get("displayName", "") or data.get("fullName", ""),
            id_token=data.get("idToken", ""),
            refresh_token=data.get("refreshToken", ""),
            provider=provider,
        )

    # ------------------------------------------------------------------
    # IdentityProvider interface
    # ------------------------------------------------------------------

    def fork(self) -> "FirebaseIdentityProvider":
        return FirebaseIdentityProvider(
            self._api_key, client=self._client, base_url=self._base_url,
        )

    async def sign_up(self, email: str, password: str) -> IdentityUser:
        data = await self._post("signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        user = self._user_from_payload(data, "password")
        log.info("Signed up %s", redact_pii(user.email))
        self._set_current_user(user)
        return user

    async def sign_in(self, email: str, password: str) -> IdentityUser:
        data = await self._post("signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        user = self._user_from_payload(data, "password")
        log.info("Signed in %s", redact_pii(user.email))
        self._set_current_user(user)
        return user

    async def sign_in_with_google(self, google_id_token: str) -> IdentityUser:
        data = await self._post("signInWithIdp", {
            "postBody": f"id_token={google_id_token}&providerId=google.com",
            "requestUri": "http://localhost",
            "returnIdpCredential": True,
            "returnSecureToken": True,
        })
        user = self._user_from_payload(data, "google.com")
        log.info("Signed in with Google %s", redact_pii(user.email))
        self._set_current_user(user)
        return user

    async def lookup(self, id_token: str) -> IdentityUser:
        data = await self._post("lookup", {"idToken": id_token})
        users = data.get("users") or []
        if not users:
            raise IdentityError("USER_NOT_FOUND", "No account for this token.")
        account = users[0]
        provider = "password"
        provider_info = account.get("providerUserInfo") or []
        if provider_info:
            provider = provider_info[0].get("providerId", provider)
        user = self._user_from_payload(account, provider)
        user.id_token = id_token
        return user
