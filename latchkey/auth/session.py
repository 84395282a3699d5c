"""Request-scoped session plumbing.

The credential middleware runs before anything else has assigned a session
to the request, so it calls ensure_session_id() itself. Both helpers are
idempotent: calling them twice on the same request returns the same object.
"""

from __future__ import annotations

from starlette.requests import Request

from latchkey.constants import SESSION_COOKIE_NAME
from latchkey.models.session import AuthSession, RequestContext
from latchkey.models.user import UserAuth
from latchkey.utils.ulid import generate_ulid


def get_request_context(request: Request) -> RequestContext:
    """Return the RequestContext on ``request.state``, creating it on first use."""
    context = getattr(request.state, "context", None)
    if context is None:
        context = RequestContext()
        request.state.context = context
    return context


def ensure_session_id(request: Request) -> str:
    """Make sure the current request has a session id.

    Reuses the session cookie if the client sent one, else generates a ULID.
    """
    context = get_request_context(request)
    if context.session_id is None:
        context.session_id = request.cookies.get(SESSION_COOKIE_NAME) or generate_ulid()
    return context.session_id


def populate_session(session: AuthSession, user: UserAuth, provider: str) -> None:
    """Copy identity fields from the resolved account into the session.

    ``user_auth_name`` falls back to the email when the account has no
    username, so email-only accounts still count as authorized.
    """
    session.provider = provider
    session.is_authenticated = True
    session.user_auth_id = user.id
    session.user_auth_name = user.user_name
    session.user_name = user.user_name
    session.display_name = user.display_name
    session.first_name = user.first_name
    session.last_name = user.last_name
    session.email = user.email

    if session.user_auth_name is None:
        session.user_auth_name = user.user_name or user.email


def resolve_display_name(session: AuthSession) -> str:
    """First non-empty of: display name, username, "first last"."""
    if session.display_name:
        return session.display_name
    if session.user_name:
        return session.user_name
    return f"{session.first_name or ''} {session.last_name or ''}".strip()


def is_authorized(session: AuthSession | None) -> bool:
    """Authenticated AND carrying a non-empty resolved username."""
    return (
        session is not None
        and session.is_authenticated
        and bool(session.user_auth_name)
    )
