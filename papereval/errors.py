"""Exception types raised inside the evaluation pipeline."""


class EvaluationError(Exception):
    """Base class for papereval errors."""


class ComputationError(EvaluationError):
    """A score could not be derived from its inputs."""


class MalformedRecordError(EvaluationError):
    """An input record cannot be interpreted at all."""


__all__ = ["EvaluationError", "ComputationError", "MalformedRecordError"]
