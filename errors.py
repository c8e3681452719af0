"""Error taxonomy shared by the survey engine and the HTTP layer."""


class SurveyError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationError(SurveyError):
    """Bad scores, malformed reply or missing required field."""

    status_code = 400


class AuthError(SurveyError):
    status_code = 401


class NotFoundError(SurveyError):
    status_code = 404


class ConflictError(SurveyError):
    """Duplicate daily response, duplicate phone number or a delete that would orphan responses."""

    status_code = 409


class DeliveryError(SurveyError):
    """The messaging gateway could not hand the message to the provider."""

    status_code = 502

    def __init__(self, reason):
        super().__init__(reason)
        self.reason = reason


class PersistenceError(SurveyError):
    status_code = 500
