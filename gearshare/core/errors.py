"""
Error kinds shared by the service and API layers.

Every error carries the HTTP status code it maps to and a short, machine readable
`kind`. Service modules subclass these for their specific conditions (e.g.
`ResourceNotFound`), and the API layer turns any of them into a JSON body of the
form `{"error": kind, "message": message}`.
"""


class GearShareError(Exception):
    status_code: int = 500
    kind: str = "internal_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GearShareError):
    """
    Missing or malformed input, including bad date ranges.
    """

    status_code = 400
    kind = "validation_error"


class PermissionDenied(GearShareError):
    """
    The acting user lacks the ownership or role required.
    """

    status_code = 403
    kind = "permission_denied"


class NotFoundError(GearShareError):
    status_code = 404
    kind = "not_found"


class ConflictError(GearShareError):
    """
    Invalid state transitions, overlapping date ranges and duplicate memberships.
    """

    status_code = 409
    kind = "conflict"
