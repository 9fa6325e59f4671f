from __future__ import annotations


class TripSplitError(Exception):
    pass


class ValidationError(TripSplitError, ValueError):
    """Malformed input: bad shares, empty assignments, negative amounts."""


class InvalidConfiguration(TripSplitError, ValueError):
    """The calculation was asked for with settings that cannot be honoured."""


class DataIntegrityError(TripSplitError):
    """Inputs contradict each other, e.g. an expense names an unknown participant."""
