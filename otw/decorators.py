"""
Custom route decorators for access control.

- role_required: ensures the caller is authenticated AND holds one of the
  given roles. Admins pass every role check.
- login_required: any authenticated caller.
- driver_required: caller has an active Driver profile (sets g.driver).
"""

from functools import wraps

from flask import g
from flask_login import current_user

from otw.errors import AuthError, AuthorizationError


def role_required(*roles):
    """Require a bearer-authenticated user whose role is in `roles`."""

    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if not current_user.is_authenticated:
                raise AuthError("Authentication required")
            if current_user.role not in roles and not current_user.is_admin:
                raise AuthorizationError("You do not have access to this resource")
            return f(*args, **kwargs)

        return decorated

    return decorator


def login_required(f):
    """Require any authenticated user (JSON 401 instead of a redirect)."""

    @wraps(f)
    def decorated(*args, **kwargs):
        if not current_user.is_authenticated:
            raise AuthError("Authentication required")
        return f(*args, **kwargs)

    return decorated


def driver_required(f):
    """Require a user with an active Driver profile; sets g.driver."""

    @wraps(f)
    @role_required("driver")
    def decorated(*args, **kwargs):
        # Imported lazily to avoid circular imports
        from otw.models.driver import Driver

        driver = Driver.query.filter_by(user_id=current_user.id).first()
        if driver is None or not driver.is_active:
            raise AuthorizationError("No active driver profile for this user")
        g.driver = driver
        return f(*args, **kwargs)

    return decorated
