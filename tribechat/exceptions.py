class ChatError(Exception):
    """Base class for errors reported back to the client that issued an action."""

    code = "chat_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class MessageValidationError(ChatError):
    """Malformed sender id, empty body or missing room. Raised before any side effect."""

    code = "validation_error"


class MessageNotFoundError(ChatError):
    code = "not_found"


class DeleteWindowExpiredError(ChatError):
    code = "window_expired"


class StorageFailure(ChatError):
    """A buffer or durable-store call failed or timed out."""

    code = "storage_failure"


class ObjectStoreError(ChatError):
    code = "object_store_failure"


HTTP_STATUS = {
    MessageValidationError: 400,
    MessageNotFoundError: 404,
    DeleteWindowExpiredError: 403,
    StorageFailure: 503,
    ObjectStoreError: 502,
}


def http_status_for(exc: ChatError) -> int:
    for cls in type(exc).__mro__:
        if cls in HTTP_STATUS:
            return HTTP_STATUS[cls]
    return 500
