"""Human-readable rendering of bind and renewal results for the chat side."""

from __future__ import annotations

from .binding import BindResult
from .errors import KeeperError
from .renewal import RenewalOutcome

ERROR_MESSAGES = {
    "format": "Wrong bind format. Send: <redirect-url> <alias>",
    "limit": "You have reached the maximum number of bindings",
    "token": "Failed to obtain a refresh token",
    "profile": "Failed to fetch account information",
    "resource": "The Graph API call failed",
    "duplicate": "This application is already bound, no need to bind it again",
    "persistence": "Could not save the binding",
}


def describe_error(exc: KeeperError) -> str:
    message = ERROR_MESSAGES.get(exc.kind, "Unexpected error")
    if exc.transient:
        message += " (network problem, try again later)"
    return message


def describe_bind(result: BindResult) -> str:
    return (
        f"MS_ID(digest): {result.subject_id}\n"
        f"userPrincipalName: {result.user_principal_name}\n"
        f"displayName: {result.display_name}"
    )


def describe_outcome(outcome: RenewalOutcome) -> str:
    if outcome.ok:
        return f"{outcome.subject_id} renewed"
    return f"{outcome.subject_id} failed at {outcome.stage} ({outcome.kind}): {outcome.detail}"
