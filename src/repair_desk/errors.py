"""Domain exceptions raised by the core operations.

All of them reach the caller unmodified. ``ValidationError`` and
``NotFound`` also subclass the matching builtins so callers that only
know about ``ValueError`` / ``LookupError`` keep working.
"""


class RepairDeskError(Exception):
    """Base class for every error raised by the core."""

    code = "error"


class ValidationError(RepairDeskError, ValueError):
    """Malformed input (bad quantity, unknown payment method, ...)."""

    code = "validation_error"


class NotFound(RepairDeskError, LookupError):
    """A referenced entity does not exist."""

    code = "not_found"


class InvalidTransition(RepairDeskError):
    """A state-machine guard rejected the operation."""

    code = "invalid_transition"


class InsufficientStock(RepairDeskError):
    """A withdrawal asked for more than is on hand."""

    code = "insufficient_stock"

    def __init__(self, part_id: int, requested: int, on_hand: int):
        self.part_id = part_id
        self.requested = requested
        self.on_hand = on_hand
        super().__init__(
            f"Insufficient stock for part {part_id}: "
            f"have {on_hand}, need {requested}"
        )


class EstimateConflict(RepairDeskError):
    """An order already has a pending (undecided) cost estimate."""

    code = "estimate_conflict"


class PermissionDenied(RepairDeskError):
    """The acting identity may not invoke this operation."""

    code = "permission_denied"


# Lookup used by the HTTP adapter to rebuild errors from response bodies
ERRORS_BY_CODE = {
    cls.code: cls
    for cls in (
        ValidationError,
        NotFound,
        InvalidTransition,
        EstimateConflict,
        PermissionDenied,
    )
}
