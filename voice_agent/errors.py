from __future__ import annotations


class AgentError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class AuthenticationError(AgentError):
    code = "unauthenticated"
    status_code = 401


class ValidationError(AgentError):
    code = "invalid_request"
    status_code = 400


class MissingFieldError(ValidationError):
    code = "missing_field"
    status_code = 500

    def __init__(self, field: str, message: str = "") -> None:
        super().__init__(message or f"Missing required field: {field}")
        self.field = field


class ResolutionError(AgentError):
    """The language service was unreachable or its call failed."""
    code = "resolution_error"


class ParseError(ResolutionError):
    """The language service answered, but not with a usable intent."""
    code = "parse_error"

    def __init__(self, message: str = "", raw_output: str = "") -> None:
        super().__init__(message)
        self.raw_output = raw_output


class BackendError(AgentError):
    code = "backend_error"


class UnrecognizedIntent(AgentError):
    code = "unrecognized_intent"
    status_code = 200
