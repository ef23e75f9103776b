"""
Handoff Web: browser login pages that hand the resulting session to a browser session
or to a native desktop app (deep link / loopback).
Web: /login, /password, /auth/start, /auth/callback, /dashboard, /logout, /forgot-password.
Desktop: /auth/desktop, /auth/desktop/login, /auth/desktop/authorize, /auth/desktop/password,
/auth/desktop/forgot-password, /auth/desktop/success.
"""
import logging
from urllib.parse import urlencode

from fastapi import BackgroundTasks, Depends, FastAPI, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from handoff_web.authorize import SUPPORTED_PROVIDERS, authorize_redirect
from handoff_web.callback import CallbackParams, CallbackResolver, Step
from handoff_web.config import (
    AUTH_BASE,
    CALLBACK_PATH,
    CLIENT_ID,
    DEEP_LINK_SCHEME,
    ENTRY_PATH,
    LOG_LEVEL,
    LOGIN_PATH,
    SESSION_COOKIE,
    SITE_URL,
)
from handoff_web.delivery import DeliveryDispatcher, LoopbackCallback, WebSession, select_target
from handoff_web.deps import (
    get_dispatcher,
    get_exchange_client,
    get_flow_store,
    get_password_limiter,
    get_resolver,
    get_session_store,
)
from handoff_web.errors import (
    AUTH_FAILED_MESSAGE,
    INVALID_CREDENTIALS_MESSAGE,
    RESET_FAILED_MESSAGE,
    TOO_MANY_ATTEMPTS_MESSAGE,
    ExchangeError,
    FlowGuardViolation,
    UnexpectedError,
)
from handoff_web.exchange import ExchangeClient
from handoff_web.flow_guard import flow_guard_redirect, require_pkce_state
from handoff_web.flow_store import FlowStore
from handoff_web.pages import (
    dashboard_page,
    desktop_login_page,
    desktop_password_page,
    desktop_success_page,
    error_page,
    forgot_password_page,
    login_page,
    password_page,
)
from handoff_web.pkce import PKCEState, generate_pkce, generate_state
from handoff_web.rate_limit import SlidingWindowLimiter
from handoff_web.session_store import SessionStore
from handoff_web.urls import append_code, loopback_port, site_callback_url

logger = logging.getLogger(__name__)

# ?error= codes the login page understands; anything else reads as a generic failure
LOGIN_ERRORS = {"auth_failed": AUTH_FAILED_MESSAGE}

app = FastAPI(title="Handoff Web", version="0.1.0")
app.add_exception_handler(FlowGuardViolation, flow_guard_redirect)


def _client_key(request: Request) -> str:
    if request.client is None:
        return "unknown"
    return request.client.host


def _throttled(response: HTMLResponse, retry_after: int | None) -> HTMLResponse:
    response.headers["Retry-After"] = str(retry_after or 60)
    return response


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "handoff_web"}


@app.get("/")
def home():
    return RedirectResponse(url=LOGIN_PATH, status_code=302)


# --- web variant ---


@app.get("/login", response_class=HTMLResponse)
def login(email: str = "", error: str | None = None):
    """Entry point of every flow. Email form plus provider buttons."""
    message = LOGIN_ERRORS.get(error, AUTH_FAILED_MESSAGE) if error else None
    return login_page(email, message)


@app.get("/password", response_class=HTMLResponse)
def password_form(email: str = ""):
    if not email.strip():
        return RedirectResponse(url=LOGIN_PATH, status_code=302)
    return password_page(email)


@app.post("/password", response_class=HTMLResponse)
def password_submit(
    request: Request,
    email: str = Form(...),
    password: str = Form(...),
    exchange: ExchangeClient = Depends(get_exchange_client),
    dispatcher: DeliveryDispatcher = Depends(get_dispatcher),
    limiter: SlidingWindowLimiter = Depends(get_password_limiter),
):
    """Web direct sign-in; success leaves a browser session and lands on the dashboard."""
    allowed, retry_after = limiter.check_and_consume(_client_key(request))
    if not allowed:
        return _throttled(password_page(email, TOO_MANY_ATTEMPTS_MESSAGE, 429), retry_after)
    try:
        result = exchange.sign_in_with_password(email, password)
    except (ExchangeError, UnexpectedError) as e:
        logger.info("web password sign-in failed: %s", type(e).__name__)
        return password_page(email, INVALID_CREDENTIALS_MESSAGE, 401)
    return dispatcher.deliver(WebSession(), result)


@app.get("/auth/start")
def auth_start(
    provider: str,
    desktop: bool = False,
    deep_link_scheme: str | None = None,
    redirect_uri: str | None = None,
    pending: FlowStore = Depends(get_flow_store),
):
    """
    Web-initiated PKCE flow: state and verifier generated here, delivery target fixed here,
    provider sent back to /auth/callback.
    """
    if provider not in SUPPORTED_PROVIDERS:
        return error_page("Unsupported sign-in provider.")
    try:
        target = select_target(
            redirect_uri, desktop=desktop, deep_link_scheme=deep_link_scheme, default_scheme=DEEP_LINK_SCHEME
        )
    except ValueError as e:
        logger.info("auth start rejected: %s", e)
        return error_page("Invalid redirect target or deep link scheme.")

    code_verifier, code_challenge = generate_pkce()
    is_desktop = not isinstance(target, WebSession)
    pkce = PKCEState(
        state=generate_state(),
        code_challenge=code_challenge,
        redirect_target=site_callback_url(
            SITE_URL, CALLBACK_PATH, desktop=is_desktop, deep_link_scheme=target.scheme if is_desktop else None
        ),
    )
    pending.store(pkce, code_verifier, target)
    logger.info("auth start: provider=%s target=%s", provider, type(target).__name__)
    return authorize_redirect(auth_base=AUTH_BASE, client_id=CLIENT_ID, pkce=pkce, provider=provider)


@app.get("/auth/callback")
def auth_callback(
    request: Request,
    background: BackgroundTasks,
    resolver: CallbackResolver = Depends(get_resolver),
    dispatcher: DeliveryDispatcher = Depends(get_dispatcher),
):
    """Provider redirect lands here with ?code=...&state=... (or ?error=...)."""
    resolution = resolver.resolve(CallbackParams.from_query(request.query_params))
    if resolution.step is Step.ENTRY_REDIRECT:
        return RedirectResponse(url=ENTRY_PATH, status_code=302)
    if resolution.step is Step.FAILED:
        return dispatcher.deliver_error(resolution.target)
    return dispatcher.deliver(
        resolution.target, resolution.result, state=resolution.state, background=background
    )


@app.get("/dashboard", response_class=HTMLResponse)
def dashboard(request: Request, store: SessionStore = Depends(get_session_store)):
    session = store.get(request.cookies.get(SESSION_COOKIE))
    if session is None:
        return RedirectResponse(url=LOGIN_PATH, status_code=302)
    return dashboard_page(session.email)


@app.post("/logout")
def logout(request: Request, store: SessionStore = Depends(get_session_store)):
    store.delete(request.cookies.get(SESSION_COOKIE))
    response = RedirectResponse(url=LOGIN_PATH, status_code=302)
    response.delete_cookie(SESSION_COOKIE)
    return response


@app.get("/forgot-password", response_class=HTMLResponse)
def forgot_password_form(email: str = ""):
    if not email.strip():
        return RedirectResponse(url=LOGIN_PATH, status_code=302)
    return forgot_password_page(None, email)


@app.post("/forgot-password", response_class=HTMLResponse)
def forgot_password_submit(
    email: str = Form(...),
    exchange: ExchangeClient = Depends(get_exchange_client),
):
    """Web password reset request; the emailed link lands back on the login page."""
    redirect_to = f"{SITE_URL}{LOGIN_PATH}?{urlencode({'email': email})}"
    try:
        exchange.recover(email, redirect_to)
    except (ExchangeError, UnexpectedError) as e:
        logger.info("password reset request failed: %s", type(e).__name__)
        return forgot_password_page(None, email, error=RESET_FAILED_MESSAGE, status_code=502)
    return forgot_password_page(None, email, sent=True)


# --- desktop variant: state, code_challenge, redirect_uri come from the desktop app ---


@app.get("/auth/desktop", response_class=HTMLResponse)
def desktop_entry(email: str = "", pkce: PKCEState = Depends(require_pkce_state)):
    return desktop_login_page(pkce, email)


@app.get("/auth/desktop/login", response_class=HTMLResponse)
def desktop_login(email: str = "", pkce: PKCEState = Depends(require_pkce_state)):
    """With an email, move on to the password step; otherwise show the login page."""
    if email.strip():
        query = urlencode({"email": email, **pkce.as_query()})
        return RedirectResponse(url=f"/auth/desktop/password?{query}", status_code=302)
    return desktop_login_page(pkce)


@app.get("/auth/desktop/authorize")
def desktop_authorize(provider: str, pkce: PKCEState = Depends(require_pkce_state)):
    try:
        return authorize_redirect(auth_base=AUTH_BASE, client_id=CLIENT_ID, pkce=pkce, provider=provider)
    except ValueError:
        return error_page("Unsupported sign-in provider.")


@app.get("/auth/desktop/password", response_class=HTMLResponse)
def desktop_password_form(email: str = "", pkce: PKCEState = Depends(require_pkce_state)):
    if not email.strip():
        return RedirectResponse(url=f"/auth/desktop?{urlencode(pkce.as_query())}", status_code=302)
    return desktop_password_page(pkce, email)


@app.post("/auth/desktop/password", response_class=HTMLResponse)
def desktop_password_submit(
    request: Request,
    background: BackgroundTasks,
    email: str = Form(...),
    password: str = Form(...),
    pkce: PKCEState = Depends(require_pkce_state),
    exchange: ExchangeClient = Depends(get_exchange_client),
    dispatcher: DeliveryDispatcher = Depends(get_dispatcher),
    limiter: SlidingWindowLimiter = Depends(get_password_limiter),
):
    """
    Loopback redirect target: direct sign-in, then loopback POST plus deep link.
    Any other target: PKCE password grant, code handed back on the redirect target.
    """
    allowed, retry_after = limiter.check_and_consume(_client_key(request))
    if not allowed:
        return _throttled(desktop_password_page(pkce, email, TOO_MANY_ATTEMPTS_MESSAGE, 429), retry_after)
    port = loopback_port(pkce.redirect_target)
    try:
        if port is not None:
            result = exchange.sign_in_with_password(email, password)
            target = LoopbackCallback(port=port, scheme=DEEP_LINK_SCHEME)
            return dispatcher.deliver(target, result, state=pkce.state, background=background)
        code = exchange.password_grant(email, password, pkce)
    except (ExchangeError, UnexpectedError) as e:
        logger.info("desktop password sign-in failed: %s", type(e).__name__)
        return desktop_password_page(pkce, email, INVALID_CREDENTIALS_MESSAGE, 401)
    return RedirectResponse(url=append_code(pkce.redirect_target, code, pkce.state), status_code=302)


@app.get("/auth/desktop/forgot-password", response_class=HTMLResponse)
def desktop_forgot_password_form(email: str = "", pkce: PKCEState = Depends(require_pkce_state)):
    return forgot_password_page(pkce, email)


@app.post("/auth/desktop/forgot-password", response_class=HTMLResponse)
def desktop_forgot_password_submit(
    email: str = Form(...),
    pkce: PKCEState = Depends(require_pkce_state),
    exchange: ExchangeClient = Depends(get_exchange_client),
):
    # Reset link brings the user back into this same desktop attempt
    redirect_to = f"{SITE_URL}/auth/desktop/login?{urlencode(pkce.as_query())}"
    try:
        exchange.recover(email, redirect_to)
    except (ExchangeError, UnexpectedError) as e:
        logger.info("password reset request failed: %s", type(e).__name__)
        return forgot_password_page(pkce, email, error=RESET_FAILED_MESSAGE, status_code=502)
    return forgot_password_page(pkce, email, sent=True)


@app.get("/auth/desktop/success", response_class=HTMLResponse)
def desktop_success():
    return desktop_success_page()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "handoff_web.main:app",
        host="127.0.0.1",
        port=3000,
        log_level=LOG_LEVEL,
        reload=True,
    )
