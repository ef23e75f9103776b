"""
Typed builders for every URL the handoff emits: deep links, the loopback login URL,
code-carrying redirect targets. Deep links are validated before they can be navigated to.
"""
import re
from typing import ClassVar, Literal
from urllib.parse import quote, urlencode, urlsplit, urlunsplit

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

# Schemes a browser would handle itself (or execute); never valid for a desktop deep link
BLOCKED_SCHEMES = frozenset({"http", "https", "javascript", "data", "file", "vbscript", "about", "blob", "ftp"})
LOOPBACK_HOSTS = frozenset({"127.0.0.1", "localhost", "::1"})

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.\-]*$")
_HOST_RE = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9.\-]*[A-Za-z0-9])?$")


def validate_scheme(scheme: str) -> str:
    """RFC 3986 scheme syntax, lowercased; browser-handled schemes rejected."""
    normalized = (scheme or "").strip().lower()
    if not _SCHEME_RE.match(normalized):
        raise ValueError(f"Invalid deep link scheme: {scheme!r}")
    if normalized in BLOCKED_SCHEMES:
        raise ValueError(f"Scheme not allowed for deep links: {normalized}")
    return normalized


def validate_host(host: str) -> str:
    if not _HOST_RE.match(host or ""):
        raise ValueError(f"Invalid deep link host: {host!r}")
    return host


class DeepLinkURL(BaseModel):
    """scheme://host/path?query for the desktop app. str() gives the URL."""

    model_config = ConfigDict(frozen=True)

    REQUIRED_KEYS: ClassVar[dict[str, tuple[str, ...]]] = {
        "callback": ("access_token", "refresh_token"),
        "error": ("message",),
    }

    scheme: str
    host: str = "auth"
    path: str = "/callback"
    kind: Literal["callback", "error"] = "callback"
    params: dict[str, str]

    @field_validator("scheme")
    @classmethod
    def _scheme(cls, v: str) -> str:
        return validate_scheme(v)

    @field_validator("host")
    @classmethod
    def _host(cls, v: str) -> str:
        return validate_host(v)

    @field_validator("path")
    @classmethod
    def _path(cls, v: str) -> str:
        if v and not v.startswith("/"):
            v = f"/{v}"
        if "?" in v or "#" in v:
            raise ValueError("Deep link path must not carry a query or fragment")
        return v

    @model_validator(mode="after")
    def _required_params(self) -> "DeepLinkURL":
        missing = [k for k in self.REQUIRED_KEYS[self.kind] if not self.params.get(k)]
        if missing:
            raise ValueError(f"Deep link {self.kind} missing: {', '.join(missing)}")
        return self

    def __str__(self) -> str:
        # %20 for spaces (quote, not quote_plus): some URL-scheme handlers do not decode '+'
        return f"{self.scheme}://{self.host}{self.path}?{urlencode(self.params, quote_via=quote)}"


def success_link(
    scheme: str,
    *,
    access_token: str,
    refresh_token: str,
    state: str | None = None,
    host: str = "auth",
    path: str = "/callback",
) -> DeepLinkURL:
    params = {"access_token": access_token, "refresh_token": refresh_token}
    if state:
        params["state"] = state
    return DeepLinkURL(scheme=scheme, host=host, path=path, kind="callback", params=params)


def error_link(scheme: str, message: str, *, host: str = "auth") -> DeepLinkURL:
    return DeepLinkURL(scheme=scheme, host=host, path="/error", kind="error", params={"message": message})


def loopback_port(redirect_target: str) -> int | None:
    """Port of an http(s) loopback redirect target, else None."""
    parts = urlsplit(redirect_target)
    if parts.scheme not in ("http", "https") or parts.hostname not in LOOPBACK_HOSTS:
        return None
    try:
        port = parts.port
    except ValueError:
        return None
    if port is None or not 0 < port < 65536:
        return None
    return port


def loopback_login_url(port: int) -> str:
    if not 0 < port < 65536:
        raise ValueError(f"Invalid loopback port: {port}")
    return f"http://127.0.0.1:{port}/login"


def append_code(redirect_target: str, code: str, state: str) -> str:
    """Hand an authorization code back to the caller's redirect target as ?code=...&state=..."""
    parts = urlsplit(redirect_target)
    added = urlencode({"code": code, "state": state})
    query = f"{parts.query}&{added}" if parts.query else added
    # Query goes before any #fragment or the receiver never sees it
    return urlunsplit(parts._replace(query=query))


def site_callback_url(site_url: str, callback_path: str, *, desktop: bool, deep_link_scheme: str | None) -> str:
    """Provider redirect_uri for web-initiated flows; desktop flags round-trip through the provider."""
    base = f"{site_url}{callback_path}"
    if not desktop:
        return base
    params = {"desktop": "true"}
    if deep_link_scheme:
        params["deep_link_scheme"] = deep_link_scheme
    return f"{base}?{urlencode(params)}"
