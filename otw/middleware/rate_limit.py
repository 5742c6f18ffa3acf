"""Rate limit middleware: applies the app's RateLimiterService to every request.

Callers are keyed by "<client ip>:<path>". Paths under /admin use the
"admin" limit, everything else the "default" limit.

Sets g.rate_limit (the RateLimitDecision) so the after_request hook can
emit X-RateLimit-* headers on every limited response.
"""

import logging
import math

from flask import current_app, g, jsonify, request
from flask_limiter.util import get_remote_address

from otw.errors import RateLimitError

logger = logging.getLogger(__name__)


def _limit_name_for(path):
    if path == "/admin" or path.startswith("/admin/"):
        return "admin"
    return "default"


def enforce_rate_limit():
    """Before-request hook. Returns a 429 response when the caller is over."""
    if not current_app.config.get("RATE_LIMIT_ENABLED", True):
        return None

    limiter = current_app.extensions.get("rate_limiter")
    if limiter is None:
        return None

    key = f"{get_remote_address()}:{request.path}"
    decision = limiter.check(key, _limit_name_for(request.path))
    g.rate_limit = decision

    if decision.allowed:
        return None

    logger.warning(f"Rate limit exceeded for {key} (retry in {decision.retry_after}s)")
    error = RateLimitError(retry_after=decision.retry_after)
    response = jsonify(error.to_dict())
    response.status_code = error.status_code
    response.headers["Retry-After"] = str(decision.retry_after)
    return response


def add_rate_limit_headers(response):
    """After-request hook. Adds X-RateLimit-* when a decision was made."""
    decision = g.get("rate_limit")
    if decision is None:
        return response

    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(math.ceil(decision.reset_at))
    return response


def init_rate_limit_middleware(app):
    """Register the limiter hooks on the app."""
    app.before_request(enforce_rate_limit)
    app.after_request(add_rate_limit_headers)
