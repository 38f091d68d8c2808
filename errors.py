"""Error taxonomy for the device protocol.

Domain functions raise these; the route handlers in ``app.py`` turn them into
JSON responses using ``status_code``.
"""


class DeviceSyncError(Exception):
    """Base class for every error surfaced to a device or dashboard caller."""

    status_code = 500

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []

    def to_dict(self):
        body = {'message': self.message}
        if self.errors:
            body['errors'] = self.errors
        return body


class NotFoundError(DeviceSyncError):
    """Unknown device, by hardware identifier or serial number."""
    status_code = 404


class ValidationError(DeviceSyncError):
    """Malformed or out-of-range field. For batches, carries per-item errors."""
    status_code = 400


class MalformedPayloadError(ValidationError):
    """Request body is not the expected shape at all."""


class IntegrityError(DeviceSyncError):
    # Device row present, settings row absent. Reported as 404 on the wire.
    status_code = 404


class ConflictError(DeviceSyncError):
    status_code = 409


class StorageError(DeviceSyncError):
    """Transaction failed and was rolled back. Nothing from the call persisted."""
    status_code = 500
