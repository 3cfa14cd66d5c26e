"""
Error taxonomy for the guardian notifier.

Every error the dispatch core raises derives from NotifierError and carries
the HTTP status the API layer reports it with. Only the HTTP entry point turns
these into responses; the change-watch path has no caller, so it logs them.

- ValidationError: malformed request, or a request that cannot be served
  (e.g. the device has no push token)
- NotFoundError: unknown device
- BackingStoreFault: the database could not be read or written
- DeliveryError: the push network or SMS gateway rejected a message
"""


class NotifierError(Exception):
    """Base class for predictable notifier errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(NotifierError):
    status_code = 400


class NotFoundError(NotifierError):
    status_code = 404


class BackingStoreFault(NotifierError):
    """The backing store was unreachable or rejected a read/write."""

    status_code = 500


class DeliveryError(NotifierError):
    """
    A single channel failed to deliver.

    Absorbed by the dispatcher: it never aborts the sibling channel
    or the trigger reset.
    """

    status_code = 502

    def __init__(self, channel: str, message: str):
        super().__init__(f"{channel} delivery failed: {message}")
        self.channel = channel
