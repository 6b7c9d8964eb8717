class RecordError(Exception):
    """Base class for failures surfaced to the user as a blocking notification."""
    kind = 'error'
    status_code = 500

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'error': self.message, 'kind': self.kind}
        payload.update(self.details)
        return payload


class NotFound(RecordError):
    """A single-result query matched zero or several rows."""
    kind = 'not_found'
    status_code = 404


class ValidationFailure(RecordError):
    """A required field is missing or malformed. Raised before any side effect."""
    kind = 'validation_failure'
    status_code = 400


class ServiceFailure(RecordError):
    """The database or the object store call itself failed."""
    kind = 'service_failure'
    status_code = 502


class PartialFailure(ServiceFailure):
    """The image was uploaded but the past_tests row could not be created."""
    kind = 'partial_failure'
    status_code = 502
