"""Client-facing errors: invariant violations rejected before any write."""


class ClientError(ValueError):
    """Base class for requests that are rejected outright."""


class NotFoundError(ClientError):
    """A referenced job, application or question does not exist."""


class DuplicateJobError(ClientError):
    """A job with this id already exists."""


class DuplicateApplicationError(ClientError):
    """An Application already exists for this (job, candidate email) pair."""


class InvalidTransitionError(ClientError):
    """The requested operation is not allowed in the Application's current state."""


class AssessmentExpiredError(ClientError):
    """The attempt's server-side time limit has passed."""


class InvalidAnswerError(ClientError):
    """The answer payload does not match the question it targets."""


class AssessmentLockedError(ClientError):
    """Questions cannot change once answers have been recorded against them."""


class JobClosedError(ClientError):
    """The job no longer accepts new attempts."""
