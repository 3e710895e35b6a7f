"""
Error taxonomy shared by the geo, provider and pipeline layers.

Each error carries the HTTP status the API layer answers with.
"""


class MeetspotError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidInput(MeetspotError):
    """Empty or malformed input; not retried"""

    status_code = 400


class NotFound(MeetspotError):
    """Geocoding miss or unknown plan; user-correctable"""

    status_code = 404


class PreconditionFailed(MeetspotError):
    """Operation requested out of sequence (e.g. venue search before a midpoint exists)"""

    status_code = 409


class UpstreamUnavailable(MeetspotError):
    """Provider could not be reached or answered with an error status; retryable"""

    status_code = 503


class ServiceNotConfigured(MeetspotError):
    """Provider credentials are missing"""

    status_code = 503


class PreferenceServiceError(Exception):
    """Preference analysis or scoring failed; callers degrade to a fallback"""
