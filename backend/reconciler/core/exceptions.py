class ReconcilerError(Exception):
    """Base exception for the billing reconciler."""

    pass


class InvalidSignatureError(ReconcilerError):
    """Raised when a webhook signature is missing or does not verify."""

    pass


class MalformedPayloadError(ReconcilerError):
    """Raised when a webhook body is not a parseable event envelope, or a
    signed Stripe object lacks fields the sync needs (customer, items, period).

    Redelivery cannot fix either, so the event is acknowledged without processing.
    """

    pass


class DanglingReferenceError(ReconcilerError):
    """Raised when a synchronized entity points at a parent row not stored locally yet.

    Usually means Stripe delivered events out of order. The event stays
    unprocessed so the provider's redelivery retries it.
    """

    def __init__(self, entity: str, entity_id: str, parent: str, parent_id: str):
        self.entity = entity
        self.entity_id = entity_id
        self.parent = parent
        self.parent_id = parent_id
        super().__init__(f"{entity} '{entity_id}' references missing {parent} '{parent_id}'")


class ProcessingFailureError(ReconcilerError):
    """Raised when synchronization of an event fails for any other reason."""

    def __init__(self, event_id: str, cause: Exception):
        self.event_id = event_id
        self.cause = cause
        super().__init__(f"Processing failed for event '{event_id}': {type(cause).__name__}: {cause}")


class ProviderError(ReconcilerError):
    """Raised when a Stripe API call fails."""

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"Stripe {operation} failed: {message}")


class NotFoundError(ReconcilerError):
    """Raised when a local row needed by a user-facing operation does not exist."""

    pass
