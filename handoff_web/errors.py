"""
Error taxonomy for the login handoff.
Only UnexpectedError and ExchangeError ever reach the user, and then only as generic text.
"""


class HandoffError(Exception):
    """Base for all handoff failures."""


class FlowGuardViolation(HandoffError):
    """Correlation values missing; recovered by redirecting to the entry point, never shown."""

    def __init__(self, missing: tuple[str, ...]):
        self.missing = missing
        super().__init__(f"missing correlation parameters: {', '.join(missing)}")


class ExchangeError(HandoffError):
    """Provider rejected the authorization code (invalid, expired, or already used)."""


class InvalidCredentials(ExchangeError):
    """Provider rejected an email/password pair. Never says which half was wrong."""


class DeliveryError(HandoffError):
    """Loopback POST to the desktop app failed. Swallowed; the deep link is authoritative."""


class UnexpectedError(HandoffError):
    """Network or parse failure talking to the provider."""


# The only failure texts a user ever sees
AUTH_FAILED_MESSAGE = "Authentication failed"
INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
RESET_FAILED_MESSAGE = "Failed to send reset email. Please try again."
TOO_MANY_ATTEMPTS_MESSAGE = "Too many attempts. Please wait a minute and try again."
