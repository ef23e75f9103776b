"""
Handoff web configuration. Identity provider location and public keys come from env.
The anon key is a publishable key, not a secret; no credentials live in this file.
"""
import os

# Identity provider (GoTrue-compatible); auth API is rooted at /auth/v1
IDP_URL = os.environ.get("HANDOFF_IDP_URL", "http://127.0.0.1:54321").rstrip("/")
AUTH_BASE = f"{IDP_URL}/auth/v1"

# Anonymous API key sent as the apikey header on every provider call
ANON_KEY = os.environ.get("HANDOFF_IDP_ANON_KEY", "")

# Project reference, used as client_id in authorize and password-grant requests
CLIENT_ID = os.environ.get("HANDOFF_PROJECT_REF", "handoff-local")

# Scheme the desktop app registers with the OS (mesh://auth/callback)
DEEP_LINK_SCHEME = os.environ.get("HANDOFF_DEEP_LINK_SCHEME", "mesh")

# Public origin of this front-end; provider redirects back to {SITE_URL}/auth/callback
SITE_URL = os.environ.get("HANDOFF_SITE_URL", "http://127.0.0.1:3000").rstrip("/")

LOGIN_PATH = "/login"
LANDING_PATH = "/dashboard"
CALLBACK_PATH = "/auth/callback"

# Every guarded step sends the user agent here when correlation values are missing
ENTRY_PATH = LOGIN_PATH

HTTP_TIMEOUT = float(os.environ.get("HANDOFF_HTTP_TIMEOUT", "10"))

# Loopback POST is best-effort; keep it short so a hung listener is abandoned quickly
LOOPBACK_TIMEOUT = float(os.environ.get("HANDOFF_LOOPBACK_TIMEOUT", "2"))

# Pending web-initiated flows (state -> verifier). Provider codes are short-lived; allow 10 min for the user
FLOW_TTL = int(os.environ.get("HANDOFF_FLOW_TTL", "600"))

# Browser session lifetime when the provider response carries no expiry
SESSION_TTL = int(os.environ.get("HANDOFF_SESSION_TTL", "3600"))
SESSION_COOKIE = "handoff_session"
SESSION_COOKIE_SECURE = os.environ.get("HANDOFF_SESSION_COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

# Per-IP password submissions per minute (web and desktop password forms)
RATE_LIMIT_PASSWORD_PER_MINUTE = int(os.environ.get("HANDOFF_RATE_LIMIT_PASSWORD_PER_MINUTE", "20"))

LOG_LEVEL = os.environ.get("HANDOFF_LOG_LEVEL", "info").lower()
