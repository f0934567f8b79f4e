"""Exception hierarchy for the oracle core and its host service."""


class OracleError(Exception):
    """Base exception for oracle errors."""

    pass


class InputError(OracleError, ValueError):
    """Raised when a call violates a precondition the caller controls.

    Examples: an empty attestation list, mismatched array lengths, a consensus
    threshold below simple majority, or too few points for manipulation
    detection.
    """

    pass


class TaskValidationError(OracleError):
    """Raised when a performer task request is malformed.

    :ivar task_id: Identifier of the rejected task, if known.
    """

    def __init__(self, message: str, task_id: str | None = None):
        """Initialize the task validation error.

        :param message: Description of the validation failure.
        :param task_id: Identifier of the rejected task.
        """
        self.task_id = task_id
        super().__init__(message)
