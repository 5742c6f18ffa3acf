"""Identity service: bearer tokens for API callers.

Tokens are signed (not encrypted) with SECRET_KEY via itsdangerous and carry
only the user id. The role is always read fresh from the users table so a
demotion takes effect on the next request.
"""

import logging

from flask import current_app
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from otw.extensions import db
from otw.models.user import User

logger = logging.getLogger(__name__)

TOKEN_SALT = "otw-api-token"


def _serializer():
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(user):
    """Return a signed bearer token for `user`."""
    return _serializer().dumps({"uid": user.id})


def load_user_from_token(token):
    """Resolve a bearer token to an active User, or None."""
    max_age = current_app.config.get("AUTH_TOKEN_MAX_AGE")
    try:
        data = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        logger.info("Rejected expired API token")
        return None
    except BadSignature:
        logger.warning("Rejected API token with bad signature")
        return None

    user = db.session.get(User, data.get("uid"))
    if user is None or not user.is_active:
        return None
    return user
