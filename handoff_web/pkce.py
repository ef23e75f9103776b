"""
PKCE (RFC 7636) correlation state for one login attempt.
S256 only. The desktop app brings its own state/challenge/redirect; web-initiated flows generate them here.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode
from collections.abc import Mapping
from dataclasses import dataclass

from handoff_web.errors import FlowGuardViolation

CODE_CHALLENGE_METHOD = "S256"

# Order matters: reported back in FlowGuardViolation.missing
CORRELATION_PARAMS = ("state", "code_challenge", "redirect_uri")


def generate_state() -> str:
    """Opaque value for CSRF protection; returned in callback."""
    return secrets.token_urlsafe(32)


def challenge_from_verifier(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def generate_pkce() -> tuple[str, str]:
    """
    Generate code_verifier and code_challenge (S256).
    Returns (code_verifier, code_challenge). Verifier is 43 chars (256 bits entropy).
    """
    code_verifier = secrets.token_urlsafe(32)
    return code_verifier, challenge_from_verifier(code_verifier)


@dataclass(frozen=True)
class PKCEState:
    state: str
    code_challenge: str
    redirect_target: str
    code_challenge_method: str = CODE_CHALLENGE_METHOD

    @classmethod
    def from_params(cls, params: Mapping[str, str | None]) -> "PKCEState":
        """
        Read state, code_challenge and redirect_uri (or the legacy `redirect` alias) from request params.
        Blank values count as missing. Raises FlowGuardViolation naming every absent value.
        """
        values = {
            "state": params.get("state"),
            "code_challenge": params.get("code_challenge"),
            "redirect_uri": params.get("redirect_uri") or params.get("redirect"),
        }
        missing = tuple(name for name in CORRELATION_PARAMS if not (values[name] or "").strip())
        if missing:
            raise FlowGuardViolation(missing)
        return cls(
            state=values["state"],
            code_challenge=values["code_challenge"],
            redirect_target=values["redirect_uri"],
        )

    def as_query(self) -> dict[str, str]:
        """Correlation values for carrying the attempt to the next page."""
        return {
            "state": self.state,
            "code_challenge": self.code_challenge,
            "redirect_uri": self.redirect_target,
        }
