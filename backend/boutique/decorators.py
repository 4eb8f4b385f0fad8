# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import AuthenticationError, PermissionDenied, error_response
from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require a valid bearer token.

    Sets g.current_user and g.session_context. Returns 401 if the header is
    missing, or the token is invalid, expired, revoked, or belongs to a
    deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return error_response(AuthenticationError("Authentication required"))

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return error_response(AuthenticationError("Invalid or expired token"))

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require one of the given roles. admin always passes.
    Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return error_response(AuthenticationError("Authentication required"))

            user = g.current_user
            if not user.has_role(*roles):
                return error_response(
                    PermissionDenied("Permission denied", {"required_roles": list(roles)})
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator
