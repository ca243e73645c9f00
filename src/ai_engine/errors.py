"""Error taxonomy shared by the retrieval, agent and sync layers."""

from __future__ import annotations


class AiEngineError(Exception):
    """Base class for all engine failures surfaced to callers."""

    retryable: bool = False
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AiEngineError):
    """Bad input shape, rejected before any side effect."""

    code = "validation_error"


class UpstreamUnavailable(AiEngineError):
    """An embedding, vector, LLM or service dependency could not be reached."""

    retryable = True
    code = "upstream_unavailable"


class EmbeddingError(UpstreamUnavailable):
    """The embedding provider failed or returned an unusable vector."""

    code = "embedding_error"


class RetrievalTimeout(UpstreamUnavailable):
    """Retrieval did not finish within the caller's deadline."""

    code = "retrieval_timeout"


class ModelUnavailable(UpstreamUnavailable):
    """The chat model is not configured or its call failed."""

    code = "model_unavailable"


class NotFoundError(AiEngineError):
    """A referenced entity or tool does not exist."""

    code = "not_found"


class ServiceRequestError(AiEngineError):
    """A downstream service rejected the request (4xx other than 404)."""

    code = "service_request_error"

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class ToolExecutionFailure(AiEngineError):
    """A tool adapter failed; captured into a ToolResult by the registry."""

    code = "tool_execution_failure"


class LoopLimitExceeded(AiEngineError):
    """The agent loop hit its iteration bound or deadline."""

    code = "loop_limit_exceeded"
