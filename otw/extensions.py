"""
Deferred extension instances.

Created here, bound to the app in create_app() via init_app().
"""

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],  # No global limit here; the tiered limiter lives in middleware
    storage_uri="memory://",
)


@login_manager.request_loader
def load_user_from_request(request):
    """Resolve the caller from an `Authorization: Bearer <token>` header.

    Imports lazily to avoid circular deps.
    """
    from otw.services.identity_service import load_user_from_token

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        return None
    return load_user_from_token(token)


@login_manager.unauthorized_handler
def unauthorized():
    """API callers get a JSON 401 instead of a login redirect."""
    from otw.errors import AuthError

    raise AuthError("Authentication required")
