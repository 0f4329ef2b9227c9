"""Exceptions raised by the sensitive-data detection pipeline."""


class DetectionError(Exception):
    """Base class for detection pipeline failures."""


class ValidationError(DetectionError):
    """Malformed trace or catalog input handed over by a collaborator."""


class TransientStoreError(DetectionError):
    """Reading the trace sample or persisting results failed."""


class SerializationConflict(DetectionError):
    """An endpoint's transaction kept conflicting with a concurrent writer."""

    def __init__(self, message: str, attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts
