from typing import Optional


class ChatError(Exception):
    """Base error for the chat endpoint.

    `public_message` is what the browser sees in `{"error": ...}`; anything
    more detailed is logged by whoever raises it.
    """

    status_code = 500
    default_message = "server error"

    def __init__(self, public_message: Optional[str] = None, detail: Optional[str] = None):
        self.public_message = public_message or self.default_message
        self.detail = detail
        super().__init__(detail or self.public_message)


class ValidationError(ChatError):
    status_code = 400
    default_message = "Message required"


class MethodNotAllowed(ChatError):
    status_code = 405
    default_message = "Use POST"


class ConfigurationError(ChatError):
    default_message = "Server misconfigured"


class UpstreamTimeout(ChatError):
    default_message = "LLM timeout"


class UpstreamHTTPError(ChatError):
    default_message = "LLM upstream error"

    def __init__(self, status_code: Optional[int] = None, body: Optional[str] = None):
        self.upstream_status = status_code
        self.upstream_body = body
        super().__init__(detail="completion API failed status=%s body=%s" % (status_code, body))


class UpstreamEmptyReply(ChatError):
    default_message = "LLM empty reply"


class LLMParseError(ChatError):
    default_message = "LLM JSON parse error"


class PersistenceError(ChatError):
    default_message = "Erreur lors de l'enregistrement de la commande"
