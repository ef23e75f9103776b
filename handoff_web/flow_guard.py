"""
Flow guard: every step of the desktop flow needs state, code_challenge and redirect_uri.
Missing any one sends the user agent back to the entry point before the endpoint body runs,
so nothing typed on the way (a password) is ever used.
"""
import logging

from fastapi import Request
from fastapi.responses import RedirectResponse

from handoff_web.config import ENTRY_PATH
from handoff_web.errors import FlowGuardViolation
from handoff_web.pkce import PKCEState

logger = logging.getLogger(__name__)


async def require_pkce_state(request: Request) -> PKCEState:
    """Dependency: correlation values from the query string, or from the form body on POST."""
    params: dict[str, str] = dict(request.query_params)
    if request.method == "POST":
        form = await request.form()
        params.update({k: v for k, v in form.items() if isinstance(v, str)})
    return PKCEState.from_params(params)


async def flow_guard_redirect(request: Request, exc: FlowGuardViolation) -> RedirectResponse:
    """Exception handler: a guard violation is routing, not an error page."""
    logger.info(
        "flow guard: %s %s missing %s; redirecting to %s",
        request.method,
        request.url.path,
        ",".join(exc.missing),
        ENTRY_PATH,
    )
    return RedirectResponse(url=ENTRY_PATH, status_code=302)
