"""Middleware for the authenticated user context."""
from functools import wraps
from flask import session, g, current_app, request, abort
from storefront.database import get_session
from storefront.exceptions import UnauthorizedError, ForbiddenError
from storefront.models import AppUser


def load_user():
    """
    Load the current user into g (Flask's per-request global).

    Authentication itself is handled upstream; the session only carries
    the authenticated `user_id`. Inactive users are treated as anonymous.
    """
    g.user = None
    g.user_id = None

    user_id = session.get('user_id')
    if not user_id:
        return

    db_session = get_session()
    if not db_session:
        return

    user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
    if user:
        g.user = user
        g.user_id = user.id
    else:
        current_app.logger.info(f"[AUTH] Ignoring session for unknown or inactive user {user_id}")


def require_login(f):
    """Decorator: Require an authenticated user (401 JSON otherwise)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise UnauthorizedError('Unauthorized')
        return f(*args, **kwargs)
    return decorated_function


def require_admin(f):
    """
    Decorator: Require an ADMIN user.

    Returns 401 for anonymous requests and 403 for authenticated
    non-admin users.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            raise UnauthorizedError('Unauthorized')
        if not g.user.is_admin:
            raise ForbiddenError('Admin access required')
        return f(*args, **kwargs)
    return decorated_function


def require_json_body():
    """
    Reject POSTs to the JSON API that are not application/json.

    Plain HTML forms can only submit urlencoded, multipart or text bodies,
    so a form posted from another site never reaches a JSON endpoint.
    """
    if request.method == 'POST' and not request.is_json:
        current_app.logger.warning(f"[AUTH] Rejected {request.content_type!r} POST to {request.path}")
        abort(415)
