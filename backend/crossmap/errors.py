"""
Typed failures raised by the mapping engine.

Routers never build HTTP errors for these by hand: the exception handlers
registered in ``crossmap.main`` translate each kind to its status code.
"""


class CrossMapError(Exception):
    """Base class for engine failures."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFound(CrossMapError):
    """Unknown control, framework, finding, report or query id."""

    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, identifier=None):
        msg = f"{resource} '{identifier}' not found" if identifier is not None else f"{resource} not found"
        super().__init__(msg, resource=resource, identifier=identifier)


class InvalidInput(CrossMapError):
    """Malformed relationship kind, out-of-range confidence, unknown query type."""

    status_code = 400
    code = "invalid_input"


class ConflictingUpdate(CrossMapError):
    """Optimistic-concurrency failure; safe to retry once with a fresh read."""

    status_code = 409
    code = "conflicting_update"


class UpstreamUnavailable(CrossMapError):
    """Persistence or AI provider failure. Never means "no data"."""

    status_code = 503
    code = "upstream_unavailable"


def require_unit_interval(name: str, value) -> float:
    """Reject values outside [0, 1] instead of clamping them."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidInput(f"{name} must be a number in [0, 1], got {value!r}")
    if number != number or number < 0.0 or number > 1.0:
        raise InvalidInput(f"{name} must be within [0, 1], got {value!r}")
    return number
