"""Exceptions raised by the fleet operations core.

Booking rejections are *not* exceptions.  They come back as
``BookingResult`` values.  These cover lookups and boundary validation.
"""


class FleetOpsError(Exception):
    """Base exception for fleet operations errors."""


class NotFoundError(FleetOpsError):
    """A vehicle, resource, depot, assignment or rule identifier is unknown."""

    def __init__(self, kind: str, identifier: str):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidParameterError(FleetOpsError):
    """A caller-supplied horizon, threshold, count or window is out of range."""


class RuleError(FleetOpsError):
    """A rule-management request cannot be applied (e.g. duplicate id)."""
