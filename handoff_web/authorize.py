"""
Authorization request builder: provider /authorize URL from a complete PKCEState.
"""
from urllib.parse import urlencode

from fastapi.responses import RedirectResponse

from handoff_web.pkce import CODE_CHALLENGE_METHOD, PKCEState

# "email" is the pseudo-provider for email/password sign-in on the provider's own page
SUPPORTED_PROVIDERS = ("email", "google", "github")


def build_authorize_url(*, auth_base: str, client_id: str, pkce: PKCEState, provider: str) -> str:
    """Build provider /authorize URL. redirect_uri is passed through exactly as the caller supplied it."""
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported provider: {provider}")
    params = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": pkce.redirect_target,
        "state": pkce.state,
        "code_challenge": pkce.code_challenge,
        "code_challenge_method": CODE_CHALLENGE_METHOD,
        "provider": provider,
    }
    return f"{auth_base}/authorize?{urlencode(params)}"


def authorize_redirect(*, auth_base: str, client_id: str, pkce: PKCEState, provider: str) -> RedirectResponse:
    """Full-page navigation to the provider; control returns only via the provider's redirect."""
    url = build_authorize_url(auth_base=auth_base, client_id=client_id, pkce=pkce, provider=provider)
    return RedirectResponse(url=url, status_code=302)
