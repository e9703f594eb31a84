from fastapi import HTTPException

# Outcome categories let clients tell an expected concurrency loss apart from a
# broken dependency: "conflict" -> refresh and pick again, "unavailable" -> retry.
REJECTED = "rejected"
CONFLICT = "conflict"
UNAVAILABLE = "unavailable"


class DispatchError(Exception):
    status_code = 400
    code = "dispatch_error"
    outcome = REJECTED
    retryable = False
    default_detail = "Request could not be processed"

    def __init__(self, detail: str = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class InvalidInput(DispatchError):
    status_code = 422
    code = "invalid_input"
    default_detail = "Invalid pricing parameters"


class InvalidLocation(DispatchError):
    status_code = 422
    code = "invalid_location"
    default_detail = "Location is out of range"


class Unauthorized(DispatchError):
    status_code = 403
    code = "unauthorized"
    default_detail = "Role is not allowed to perform this operation"


class RequestNotFound(DispatchError):
    status_code = 404
    code = "request_not_found"
    default_detail = "Request not found"


class InvalidTransition(DispatchError):
    status_code = 409
    code = "invalid_transition"
    default_detail = "Transition is not allowed from the current status"


class AlreadyClaimed(DispatchError):
    status_code = 409
    code = "already_claimed"
    outcome = CONFLICT
    default_detail = "Request was already claimed by another agent"


class InsufficientInventory(DispatchError):
    status_code = 409
    code = "insufficient_inventory"
    outcome = CONFLICT
    default_detail = "Not enough stock to approve the request"


class PaymentVerificationFailed(DispatchError):
    status_code = 402
    code = "payment_verification_failed"
    default_detail = "Payment could not be verified"


class PaymentAlreadyConsumed(DispatchError):
    status_code = 409
    code = "payment_already_consumed"
    default_detail = "Payment is already bound to a request"


class GatewayUnavailable(DispatchError):
    status_code = 502
    code = "gateway_unavailable"
    outcome = UNAVAILABLE
    retryable = True
    default_detail = "Payment gateway is unavailable"


class GatewayTimeout(DispatchError):
    status_code = 504
    code = "gateway_timeout"
    outcome = UNAVAILABLE
    retryable = True
    default_detail = "Payment gateway did not respond in time"


def to_http_exception(exc: DispatchError) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={
            "message": exc.detail,
            "code": exc.code,
            "outcome": exc.outcome,
            "retryable": exc.retryable,
        },
    )


def actor_headers_missing_exception():
    return HTTPException(status_code=401, detail="Identity headers required")
