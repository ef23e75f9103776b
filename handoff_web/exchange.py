"""
Credential exchange against the identity provider's auth API (GoTrue-compatible /auth/v1).
Authorization code exchange, PKCE password grant, direct password sign-in, password reset request.
The httpx.Client is injected per request; this module keeps no client of its own.
"""
import logging

import httpx
from pydantic import BaseModel, ValidationError

from handoff_web.errors import ExchangeError, InvalidCredentials, UnexpectedError
from handoff_web.models import ExchangeResult, PasswordGrantResponse
from handoff_web.pkce import CODE_CHALLENGE_METHOD, PKCEState

logger = logging.getLogger(__name__)


def _provider_error(r: httpx.Response) -> str:
    """Provider's error code, for logs only. Never shown to the user."""
    try:
        body = r.json()
    except ValueError:
        return "unparsable"
    if not isinstance(body, dict):
        return "unknown"
    return str(body.get("error_code") or body.get("error") or "unknown")


class ExchangeClient:
    def __init__(self, http: httpx.Client, *, auth_base: str, api_key: str, client_id: str):
        self._http = http
        self.auth_base = auth_base.rstrip("/")
        self.api_key = api_key
        self.client_id = client_id

    def _post(self, path: str, *, params: dict[str, str], json: dict[str, str]) -> httpx.Response:
        headers = {"Accept": "application/json", "apikey": self.api_key}
        try:
            return self._http.post(f"{self.auth_base}{path}", params=params, json=json, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("identity provider request to %s failed: %s", path, type(e).__name__)
            raise UnexpectedError("Identity provider unreachable") from e

    @staticmethod
    def _parse(r: httpx.Response, model: type[BaseModel]):
        try:
            return model.model_validate(r.json())
        except (ValueError, ValidationError) as e:
            logger.warning("identity provider returned an unusable %s body", model.__name__)
            raise UnexpectedError("Unexpected identity provider response") from e

    def exchange_code(self, code: str, code_verifier: str) -> ExchangeResult:
        """
        Redeem an authorization code with its PKCE verifier.
        Codes are single-use at the provider; a replay comes back as a rejection and raises ExchangeError.
        """
        r = self._post(
            "/token",
            params={"grant_type": "pkce"},
            json={"auth_code": code, "code_verifier": code_verifier},
        )
        if not r.is_success:
            logger.info("code exchange rejected: status=%s error=%s", r.status_code, _provider_error(r))
            raise ExchangeError("Authorization code rejected")
        return self._parse(r, ExchangeResult)

    def password_grant(self, email: str, password: str, pkce: PKCEState) -> str:
        """
        PKCE password grant on behalf of a desktop app. Returns the authorization code;
        the desktop app holds the verifier and redeems the code itself.
        """
        r = self._post(
            "/token",
            params={
                "grant_type": "password",
                "client_id": self.client_id,
                "redirect_uri": pkce.redirect_target,
                "state": pkce.state,
                "code_challenge": pkce.code_challenge,
                "code_challenge_method": CODE_CHALLENGE_METHOD,
            },
            json={"email": email, "password": password},
        )
        if not r.is_success:
            logger.info("password grant rejected: status=%s error=%s", r.status_code, _provider_error(r))
            raise InvalidCredentials("Invalid email or password")
        return self._parse(r, PasswordGrantResponse).code

    def sign_in_with_password(self, email: str, password: str) -> ExchangeResult:
        """Direct sign-in; the provider answers with a full session."""
        r = self._post(
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        if not r.is_success:
            logger.info("password sign-in rejected: status=%s error=%s", r.status_code, _provider_error(r))
            raise InvalidCredentials("Invalid email or password")
        return self._parse(r, ExchangeResult)

    def recover(self, email: str, redirect_to: str) -> None:
        """Ask the provider to email a password reset link."""
        r = self._post("/recover", params={}, json={"email": email, "redirect_to": redirect_to})
        if not r.is_success:
            logger.info("password reset request rejected: status=%s error=%s", r.status_code, _provider_error(r))
            raise ExchangeError("Password reset request rejected")
