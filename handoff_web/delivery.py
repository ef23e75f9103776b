"""
Delivery of a finished login to whoever is waiting for it: this browser (web session),
the desktop app via its URL scheme (deep link), or the desktop app's loopback listener.
The target is chosen once per flow by select_target and never changes afterwards.
"""
import logging
from dataclasses import dataclass
from urllib.parse import urlencode, urlsplit

import httpx
from fastapi import BackgroundTasks
from fastapi.responses import RedirectResponse

from handoff_web.config import (
    LANDING_PATH,
    LOGIN_PATH,
    LOOPBACK_TIMEOUT,
    SESSION_COOKIE,
    SESSION_COOKIE_SECURE,
)
from handoff_web.errors import AUTH_FAILED_MESSAGE, DeliveryError
from handoff_web.models import ExchangeResult, LoopbackPayload
from handoff_web.session_store import SessionStore
from handoff_web.urls import (
    error_link,
    loopback_login_url,
    loopback_port,
    success_link,
    validate_host,
    validate_scheme,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebSession:
    """Browser keeps the session; land on the dashboard."""


@dataclass(frozen=True)
class DeepLink:
    scheme: str
    host: str = "auth"
    path: str = "/callback"


@dataclass(frozen=True)
class LoopbackCallback:
    port: int
    # Deep link fired alongside the loopback POST
    scheme: str


DeliveryTarget = WebSession | DeepLink | LoopbackCallback


def select_target(
    redirect_target: str | None,
    *,
    desktop: bool,
    deep_link_scheme: str | None,
    default_scheme: str,
) -> DeliveryTarget:
    """
    The one selection rule:
    loopback http(s) redirect target -> LoopbackCallback on its port;
    custom-scheme redirect target -> DeepLink on that scheme/host/path;
    no redirect target -> DeepLink on deep_link_scheme when desktop, else WebSession.
    Any other redirect target (a remote web origin) is rejected with ValueError.
    """
    scheme = validate_scheme(deep_link_scheme or default_scheme)
    if redirect_target:
        port = loopback_port(redirect_target)
        if port is not None:
            return LoopbackCallback(port=port, scheme=scheme)
        parts = urlsplit(redirect_target)
        if parts.scheme and parts.scheme not in ("http", "https"):
            return DeepLink(
                scheme=validate_scheme(parts.scheme),
                host=validate_host(parts.netloc or "auth"),
                path=parts.path or "/callback",
            )
        raise ValueError("Redirect target must be a loopback URL or a custom-scheme URI")
    if desktop:
        return DeepLink(scheme=scheme)
    return WebSession()


class DeliveryDispatcher:
    def __init__(
        self,
        sessions: SessionStore,
        *,
        loopback_transport: httpx.BaseTransport | None = None,
        loopback_timeout: float = LOOPBACK_TIMEOUT,
        cookie_secure: bool = SESSION_COOKIE_SECURE,
    ):
        self.sessions = sessions
        self._loopback_transport = loopback_transport
        self._loopback_timeout = loopback_timeout
        self._cookie_secure = cookie_secure

    def deliver(
        self,
        target: DeliveryTarget,
        result: ExchangeResult,
        *,
        state: str | None = None,
        background: BackgroundTasks | None = None,
    ) -> RedirectResponse:
        """Hand a successful exchange to target. Returns the navigation for the user agent."""
        if isinstance(target, WebSession):
            session_id = self.sessions.create(result)
            response = RedirectResponse(url=LANDING_PATH, status_code=302)
            response.set_cookie(
                SESSION_COOKIE,
                session_id,
                httponly=True,
                samesite="lax",
                secure=self._cookie_secure,
            )
            logger.info("delivered session to browser")
            return response
        if isinstance(target, DeepLink):
            link = success_link(
                target.scheme,
                access_token=result.access_token,
                refresh_token=result.refresh_token,
                state=state,
                host=target.host,
                path=target.path,
            )
            logger.info("delivered session via deep link scheme=%s", target.scheme)
            return RedirectResponse(url=str(link), status_code=302)
        if isinstance(target, LoopbackCallback):
            # Unordered with the deep link below; neither waits on the other
            if background is not None:
                background.add_task(self.notify_loopback, target.port, result.refresh_token)
            else:
                self.notify_loopback(target.port, result.refresh_token)
            link = success_link(
                target.scheme,
                access_token=result.access_token,
                refresh_token=result.refresh_token,
                state=state,
            )
            logger.info("delivered session via loopback port=%s and deep link scheme=%s", target.port, target.scheme)
            return RedirectResponse(url=str(link), status_code=302)
        raise TypeError(f"Unknown delivery target: {target!r}")

    def deliver_error(self, target: DeliveryTarget, message: str = AUTH_FAILED_MESSAGE) -> RedirectResponse:
        """Failure goes out on the same channel success would have used."""
        if isinstance(target, WebSession):
            return RedirectResponse(url=f"{LOGIN_PATH}?{urlencode({'error': 'auth_failed'})}", status_code=302)
        if isinstance(target, DeepLink):
            link = error_link(target.scheme, message, host=target.host)
        elif isinstance(target, LoopbackCallback):
            link = error_link(target.scheme, message)
        else:
            raise TypeError(f"Unknown delivery target: {target!r}")
        logger.info("delivered failure via deep link scheme=%s", link.scheme)
        return RedirectResponse(url=str(link), status_code=302)

    def notify_loopback(self, port: int, refresh_token: str) -> None:
        """Best-effort POST to the desktop app. Failures are logged and dropped."""
        try:
            self.post_loopback(port, refresh_token)
        except DeliveryError as e:
            logger.info("loopback delivery to port %s failed (%s); deep link remains authoritative", port, e)

    def post_loopback(self, port: int, refresh_token: str) -> None:
        payload = LoopbackPayload(refresh_token=refresh_token)
        try:
            url = loopback_login_url(port)
            with httpx.Client(transport=self._loopback_transport, timeout=self._loopback_timeout) as client:
                r = client.post(url, json=payload.model_dump())
                r.raise_for_status()
        except (httpx.HTTPError, ValueError) as e:
            raise DeliveryError(type(e).__name__) from e
