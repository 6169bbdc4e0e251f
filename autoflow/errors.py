from typing import Any, Dict, Optional


class AutoflowError(Exception):
    """Base class for errors surfaced to callers.

    Each subclass carries the HTTP status and a stable error code so the API
    layer can translate it without knowing the individual types.
    """

    status_code: int = 400
    error_code: str = "error"

    def __init__(self, message: str, *, detail: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(AutoflowError):
    """Malformed input supplied by the caller."""
    status_code = 400
    error_code = "validation_error"


class UnsupportedAuthKind(AutoflowError):
    """An auth flow was requested from a service that does not use it."""
    status_code = 400
    error_code = "unsupported_auth_kind"


class UnsupportedRefresh(AutoflowError):
    """Token refresh is not possible for this service or token set."""
    status_code = 400
    error_code = "unsupported_refresh"


class DecryptionError(AutoflowError):
    """Ciphertext is corrupted or was produced with another secret."""
    status_code = 500
    error_code = "decryption_error"


class OAuthExchangeError(AutoflowError):
    status_code = 502
    error_code = "oauth_exchange_failed"

    def __init__(self, message: str, *, service_id: str, detail: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, detail={"service": service_id, **(detail or {})})
        self.service_id = service_id


class NotFoundError(AutoflowError):
    status_code = 404
    error_code = "not_found"


class ExternalServiceError(AutoflowError):
    """A liveness or validation call to a third-party service failed."""
    status_code = 502
    error_code = "external_service_error"


class EngineError(AutoflowError):
    """The workflow engine rejected or could not serve a request."""
    status_code = 502
    error_code = "engine_error"


class ConfigurationError(AutoflowError):
    status_code = 500
    error_code = "configuration_error"
