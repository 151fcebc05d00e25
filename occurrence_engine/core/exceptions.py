"""Exception hierarchy for the occurrence engine.

The engine itself degrades to empty results for malformed records, so these
exceptions are only raised at the edges: when callers hand in date keys that
cannot be parsed, or when the configured timezone cannot be loaded.
"""


class OccurrenceEngineError(Exception):
    """Base exception for all occurrence engine errors.

    Catch this to handle any error raised by the engine's boundary helpers.
    """


class InvalidDateKeyError(OccurrenceEngineError, ValueError):
    """A calendar date key was not in ``YYYY-MM-DD`` form.

    Raised when:
    - A window bound is empty or malformed
    - A date key names an impossible date (e.g. 2026-02-30)
    """


class UnknownTimezoneError(OccurrenceEngineError):
    """The configured timezone is not a valid IANA identifier.

    Raised when neither the name nor any known alias of it can be loaded
    with zoneinfo.
    """
