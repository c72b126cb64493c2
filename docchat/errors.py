class ChatError(RuntimeError):
    """Base error for a failed chat turn.

    ``kind`` is the coarse category the HTTP layer maps to a status code.
    """

    kind = "ChatError"
    default_message = "Chat turn failed"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)


class EmptyInput(ChatError):
    kind = "EmptyInput"
    default_message = "Message is required"


class DocumentReadError(ChatError):
    kind = "DocumentReadError"
    default_message = "Document could not be read"


class BackendThrottled(ChatError):
    kind = "BackendThrottled"
    default_message = "LLM backend is throttling requests"


class BackendInvocationFailed(ChatError):
    kind = "BackendInvocationFailed"
    default_message = "Failed to get response from AI model"


class EmptyGeneration(ChatError):
    kind = "EmptyGeneration"
    default_message = "Empty response received from AI model"
