"""
HTML for the login pages. Unstyled; every interpolated value goes through html.escape.
"""
import html
from urllib.parse import urlencode

from fastapi.responses import HTMLResponse

from handoff_web.pkce import PKCEState

PROVIDER_LABELS = {"google": "Google", "github": "GitHub"}


def _escape(s: str | None) -> str:
    if s is None:
        return ""
    return html.escape(str(s))


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{_escape(title)}</title></head>
<body>
{body}
</body>
</html>""",
        status_code=status_code,
    )


def _hidden(pkce: PKCEState) -> str:
    return "\n".join(
        f'    <input type="hidden" name="{name}" value="{_escape(value)}">' for name, value in pkce.as_query().items()
    )


def _error(message: str | None) -> str:
    return f'  <p class="error">{_escape(message)}</p>\n' if message else ""


def _provider_links(href_for) -> str:
    return "\n".join(
        f'  <p><a href="{_escape(href_for(provider))}">Continue with {label}</a></p>'
        for provider, label in PROVIDER_LABELS.items()
    )


def error_page(message: str, status_code: int = 400) -> HTMLResponse:
    return _page("Error", f"  <h1>Error</h1>\n  <p>{_escape(message)}</p>\n  <p><a href=\"/login\">Back to login</a></p>", status_code)


# --- web variant ---


def login_page(email: str = "", error: str | None = None) -> HTMLResponse:
    providers = _provider_links(lambda p: f"/auth/start?{urlencode({'provider': p})}")
    return _page(
        "Welcome back",
        f"""  <h1>Welcome back</h1>
  <p>Sign in to your account</p>
{_error(error)}  <form method="get" action="/password">
    <label>Email <input type="email" name="email" value="{_escape(email)}" required></label>
    <button type="submit">Continue</button>
  </form>
  <p>OR</p>
{providers}""",
    )


def password_page(email: str, error: str | None = None, status_code: int = 200) -> HTMLResponse:
    back = f"/login?{urlencode({'email': email})}"
    forgot = f"/forgot-password?{urlencode({'email': email})}"
    return _page(
        "Enter your password",
        f"""  <h1>Enter your password</h1>
  <p>{_escape(email)}</p>
{_error(error)}  <form method="post" action="/password">
    <input type="hidden" name="email" value="{_escape(email)}">
    <label>Password <input type="password" name="password" required></label>
    <button type="submit">Sign in</button>
  </form>
  <p><a href="{_escape(forgot)}">Forgot your password?</a></p>
  <p><a href="{_escape(back)}">Back to Login</a></p>""",
        status_code,
    )


def dashboard_page(email: str | None) -> HTMLResponse:
    who = _escape(email) if email else "your account"
    return _page(
        "Dashboard",
        f"""  <h1>Dashboard</h1>
  <p>Signed in as {who}.</p>
  <form method="post" action="/logout"><button type="submit">Sign out</button></form>""",
    )


# --- desktop variant ---


def desktop_login_page(pkce: PKCEState, email: str = "") -> HTMLResponse:
    providers = _provider_links(
        lambda p: f"/auth/desktop/authorize?{urlencode({'provider': p, **pkce.as_query()})}"
    )
    return _page(
        "Welcome back",
        f"""  <h1>Welcome back</h1>
  <p>Sign in to continue to the desktop app</p>
  <form method="get" action="/auth/desktop/login">
{_hidden(pkce)}
    <label>Email <input type="email" name="email" value="{_escape(email)}" required></label>
    <button type="submit">Continue</button>
  </form>
  <p>OR</p>
{providers}""",
    )


def desktop_password_page(
    pkce: PKCEState, email: str, error: str | None = None, status_code: int = 200
) -> HTMLResponse:
    forgot = f"/auth/desktop/forgot-password?{urlencode({'email': email, **pkce.as_query()})}"
    back = f"/auth/desktop?{urlencode({'email': email, **pkce.as_query()})}"
    return _page(
        "Enter your password",
        f"""  <h1>Enter your password</h1>
  <p>{_escape(email)}</p>
{_error(error)}  <form method="post" action="/auth/desktop/password">
{_hidden(pkce)}
    <input type="hidden" name="email" value="{_escape(email)}">
    <label>Password <input type="password" name="password" required></label>
    <button type="submit">Sign in</button>
  </form>
  <p><a href="{_escape(forgot)}">Forgot your password?</a></p>
  <p><a href="{_escape(back)}">Back to Login</a></p>""",
        status_code,
    )


def forgot_password_page(
    pkce: PKCEState | None, email: str, *, sent: bool = False, error: str | None = None, status_code: int = 200
) -> HTMLResponse:
    """Reset request form. Without pkce it serves the web variant."""
    if pkce is None:
        action, hidden = "/forgot-password", ""
        back = f"/password?{urlencode({'email': email})}"
    else:
        action, hidden = "/auth/desktop/forgot-password", f"{_hidden(pkce)}\n"
        back = f"/auth/desktop/login?{urlencode({'email': email, **pkce.as_query()})}"
    if sent:
        body = f"""  <h1>Check your email</h1>
  <p>We've sent a password reset link to <strong>{_escape(email)}</strong>.</p>"""
    else:
        body = f"""  <h1>Reset your password</h1>
  <p>We'll send you a link to reset your password</p>
{_error(error)}  <form method="post" action="{action}">
{hidden}    <input type="hidden" name="email" value="{_escape(email)}">
    <p>{_escape(email)}</p>
    <button type="submit">Send reset link</button>
  </form>"""
    return _page("Reset your password", f'{body}\n  <p><a href="{_escape(back)}">Back to Login</a></p>', status_code)


def desktop_success_page() -> HTMLResponse:
    return _page(
        "Authentication Successful",
        """  <h1>Authentication Successful</h1>
  <p>You may now close this window.</p>""",
    )
