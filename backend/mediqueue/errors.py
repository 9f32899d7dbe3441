"""
Queue error taxonomy.

Every error carries the HTTP status it maps to and whether the caller may
retry it, so the API layer can translate them in one place.
"""


class QueueError(Exception):
    status_code = 400
    retryable = False

    def __init__(self, message: str, **details):
        self.message = message
        self.details = details
        super().__init__(message)


class DuplicateTokenError(QueueError):
    """The appointment already holds a token (treat as already booked)."""
    status_code = 409

    def __init__(self, appointment_id: str):
        super().__init__("Appointment already queued", appointment_id=appointment_id)


class ProviderBusyError(QueueError):
    """Another token is already being served in the same scope."""
    status_code = 409
    retryable = True

    def __init__(self, provider_id: str, queue_date: str, serving_token_id: str):
        super().__init__(
            "Cannot call next patient, one is already being served",
            provider_id=provider_id,
            queue_date=queue_date,
            serving_token_id=serving_token_id,
        )


class IllegalTransitionError(QueueError):
    status_code = 422

    def __init__(self, token_id: str, current: str, target: str):
        super().__init__(
            f"Illegal status transition {current} -> {target}",
            token_id=token_id,
            current=current,
            target=target,
        )


class NotFoundError(QueueError):
    status_code = 404

    def __init__(self, what: str, identifier: str):
        super().__init__(f"{what} not found", identifier=identifier)


class ConcurrentUpdateError(QueueError):
    """Another process committed to the same scope first; retry the request."""
    status_code = 409
    retryable = True

    def __init__(self, provider_id: str, queue_date: str):
        super().__init__("Queue changed concurrently, please retry",
                         provider_id=provider_id, queue_date=queue_date)
