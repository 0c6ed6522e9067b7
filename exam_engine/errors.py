"""
Error taxonomy.

Only SubmissionFailure and the caller errors ever reach the UI layer;
the rest are caught where they happen and degrade in the learner's favour.
"""


class ExamEngineError(Exception):
    """Base class for every engine error."""


class GenerationFailure(ExamEngineError):
    """A generation call failed or returned text with no usable question array."""

    def __init__(self, message: str, batch_index: int = 0):
        super().__init__(message)
        self.batch_index = batch_index


class ParseFailure(ExamEngineError):
    """Judge text did not match the expected grading format."""


class SubmissionFailure(ExamEngineError):
    """The submission backend was unreachable or rejected the request.

    The computed result travels with the exception so the caller can retry
    the hand-off without grading again.
    """

    def __init__(self, message: str, payload=None, status_code: int = 0):
        super().__init__(message)
        self.payload = payload
        self.status_code = status_code


class TimerPersistenceFailure(ExamEngineError):
    """Writing the timer state to the store failed."""


class InvalidTransition(ExamEngineError):
    """An operation was requested in a state that does not allow it."""


class UnknownQuestion(ExamEngineError):
    """An answer was given for a question id that is not in the bank."""
