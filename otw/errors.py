"""Service error taxonomy.

Every error the core raises toward an HTTP caller is a ServiceError carrying
its status code and a stable machine-readable code. create_app() registers a
handler that renders them as {"error": ..., "code": ...[, "details": ...]}.
"""


class ServiceError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message=None, details=None, status_code=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        body = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AuthError(ServiceError):
    status_code = 401
    code = "UNAUTHORIZED"


class AuthorizationError(ServiceError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(ServiceError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(ServiceError):
    status_code = 409
    code = "CONFLICT"


class InvalidTransitionError(ServiceError):
    status_code = 400
    code = "INVALID_TRANSITION"


class RateLimitError(ServiceError):
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, message="Too many requests", retry_after=1, details=None):
        super().__init__(message, details=details)
        self.retry_after = retry_after

    def to_dict(self):
        body = super().to_dict()
        body["retry_after"] = self.retry_after
        return body


class UpstreamError(ServiceError):
    status_code = 502
    code = "UPSTREAM_ERROR"


class GeocodeError(UpstreamError):
    code = "GEOCODE_ERROR"


class RouteError(UpstreamError):
    code = "ROUTE_ERROR"


class PaymentGatewayError(UpstreamError):
    code = "PAYMENT_GATEWAY_ERROR"


class PaymentGatewayUnavailable(UpstreamError):
    status_code = 503
    code = "PAYMENT_GATEWAY_UNAVAILABLE"


class InternalError(ServiceError):
    status_code = 500
    code = "INTERNAL_ERROR"


class SignatureError(ServiceError):
    status_code = 400
    code = "INVALID_SIGNATURE"


class AmbiguousEventError(ServiceError):
    """A webhook event lacks the metadata needed to route it to a record."""

    status_code = 200
    code = "AMBIGUOUS_EVENT"


class FanoutError(ServiceError):
    code = "FANOUT_FAILED"


class AllOperationsFailedError(ServiceError):
    status_code = 400
    code = "ALL_OPERATIONS_FAILED"

    def __init__(self, failed, message="All operations failed"):
        super().__init__(message, details={"failed": failed})
        self.failed = failed
