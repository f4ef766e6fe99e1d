"""
Sistema de manejo de errores personalizado.

Este módulo define todas las excepciones personalizadas de la aplicación
y proporciona utilidades para manejo consistente de errores.
"""

import logging
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class ErrorCode(Enum):
    """
    Códigos de error estandardizados para la aplicación.
    """

    # Errores generales
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Errores de recursos
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    ORDER_LOCKED = "ORDER_LOCKED"

    # Errores de base de datos
    DATABASE_ERROR = "DATABASE_ERROR"

    # Errores de Shopify
    SHOPIFY_CONNECTION_FAILED = "SHOPIFY_CONNECTION_FAILED"
    SHOPIFY_API_ERROR = "SHOPIFY_API_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Errores de autenticación
    INVALID_WEBHOOK_SIGNATURE = "INVALID_WEBHOOK_SIGNATURE"
    INVALID_SESSION_TOKEN = "INVALID_SESSION_TOKEN"
    FORBIDDEN = "FORBIDDEN"

    # Errores de datos
    INVALID_ORDER_DATA = "INVALID_ORDER_DATA"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"


class ErrorSeverity(Enum):
    """
    Niveles de severidad para errores.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AppException(Exception):
    """
    Excepción base para todas las excepciones personalizadas de la aplicación.
    """

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR,
        details: Optional[Dict[str, Any]] = None,
        status_code: int = 500,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        is_retryable: bool = False,
    ):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error
            error_code: Código de error estandardizado
            details: Información adicional del error
            status_code: Código HTTP asociado
            severity: Severidad del error
            is_retryable: Si la operación puede reintentarse
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.status_code = status_code
        self.severity = severity
        self.is_retryable = is_retryable
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convierte la excepción a diccionario.

        Returns:
            Dict: Representación de la excepción
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code.value,
            "details": self.details,
            "status_code": self.status_code,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        """String representation del error."""
        return f"{self.error_code.value}: {self.message}"


class ValidationException(AppException):
    """
    Excepción para errores de validación de datos de entrada.
    """

    def __init__(
        self,
        message: str,
        field: str,
        invalid_value: Any = None,
        expected_format: Optional[str] = None,
        **kwargs,
    ):
        """
        Inicializa la excepción de validación.

        Args:
            message: Mensaje de error
            field: Campo que falló la validación
            invalid_value: Valor que causó el error
            expected_format: Formato esperado
            **kwargs: Argumentos adicionales para AppException
        """
        kwargs.setdefault("error_code", ErrorCode.VALIDATION_ERROR)
        super().__init__(
            message=message,
            status_code=422,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.field = field
        self.invalid_value = invalid_value
        self.expected_format = expected_format

        self.details.update(
            {
                "field": field,
                "invalid_value": str(invalid_value) if invalid_value is not None else None,
                "expected_format": expected_format,
            }
        )


class InvalidOrderError(ValidationException):
    """
    Pedido con campos monetarios ausentes o inválidos (p.ej. total negativo).
    """

    def __init__(self, message: str, order_id: Optional[str] = None, field: str = "total", **kwargs):
        super().__init__(
            message=message,
            field=field,
            error_code=ErrorCode.INVALID_ORDER_DATA,
            **kwargs,
        )
        self.order_id = order_id
        self.details["order_id"] = order_id


class NotFoundError(AppException):
    """
    Excepción para pedidos, agentes o clientes inexistentes.
    """

    def __init__(self, message: str, resource: str, resource_id: Optional[str] = None, **kwargs):
        """
        Inicializa la excepción de recurso no encontrado.

        Args:
            message: Mensaje de error
            resource: Tipo de recurso (order, agent, customer)
            resource_id: Identificador buscado
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.NOT_FOUND,
            status_code=404,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.resource = resource
        self.resource_id = resource_id

        self.details.update({"resource": resource, "resource_id": resource_id})


class ConflictError(AppException):
    """
    Escritura concurrente detectada (versión de asignación desactualizada).
    """

    def __init__(self, message: str, expected_version: Optional[int] = None, current_version: Optional[int] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFLICT,
            status_code=409,
            severity=ErrorSeverity.LOW,
        )
        self.expected_version = expected_version
        self.current_version = current_version

        self.details.update({"expected_version": expected_version, "current_version": current_version})


class LockAcquisitionError(AppException):
    """
    El lock del pedido no se obtuvo dentro del timeout; reintentable.
    """

    def __init__(self, message: str, order_id: Optional[str] = None, timeout_seconds: Optional[float] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.ORDER_LOCKED,
            status_code=409,
            severity=ErrorSeverity.LOW,
            is_retryable=True,
        )
        self.order_id = order_id
        self.details.update({"order_id": order_id, "timeout_seconds": timeout_seconds})


class AuthenticationError(AppException):
    """
    Firma de webhook o token de sesión ausente o inválido.
    """

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.INVALID_WEBHOOK_SIGNATURE, **kwargs):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=401,
            severity=ErrorSeverity.MEDIUM,
            **kwargs,
        )


class AuthorizationError(AppException):
    """
    Usuario autenticado sin permisos sobre el recurso solicitado.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.FORBIDDEN,
            status_code=403,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )


class DatabaseException(AppException):
    """
    Error de acceso a la base de datos local.
    """

    def __init__(self, message: str, operation: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.DATABASE_ERROR,
            status_code=500,
            severity=ErrorSeverity.HIGH,
            is_retryable=True,
            **kwargs,
        )
        self.operation = operation
        self.details["operation"] = operation


class UpstreamError(AppException):
    """
    Excepción para errores de la API de Shopify (red o respuesta de error).
    """

    def __init__(
        self,
        message: str,
        api_response_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        rate_limited: bool = False,
        retry_after: Optional[int] = None,
        **kwargs,
    ):
        """
        Inicializa la excepción de Shopify API.

        Args:
            message: Mensaje de error (se preserva el mensaje original)
            api_response_code: Código de respuesta de Shopify
            endpoint: Endpoint que falló
            rate_limited: Si es por rate limiting
            retry_after: Segundos para reintentar
            **kwargs: Argumentos adicionales para AppException
        """
        error_code = ErrorCode.SHOPIFY_API_ERROR
        severity = ErrorSeverity.MEDIUM

        if rate_limited:
            error_code = ErrorCode.RATE_LIMIT_EXCEEDED
            severity = ErrorSeverity.LOW
        elif api_response_code is None:
            error_code = ErrorCode.SHOPIFY_CONNECTION_FAILED
            severity = ErrorSeverity.HIGH
        elif api_response_code >= 500:
            severity = ErrorSeverity.HIGH

        super().__init__(
            message=message,
            error_code=error_code,
            status_code=502,
            severity=severity,
            is_retryable=rate_limited or api_response_code is None or api_response_code >= 500,
            **kwargs,
        )

        self.api_response_code = api_response_code
        self.endpoint = endpoint
        self.rate_limited = rate_limited
        self.retry_after = retry_after

        self.details.update(
            {
                "api_response_code": api_response_code,
                "endpoint": endpoint,
                "rate_limited": rate_limited,
                "retry_after": retry_after,
            }
        )


# === FUNCIONES DE UTILIDAD ===


def log_error(
    exception: Exception,
    context: Optional[Dict[str, Any]] = None,
    level: int = logging.ERROR,
) -> None:
    """
    Loggea un error de manera consistente.

    Args:
        exception: Excepción a loggear
        context: Contexto adicional
        level: Nivel de logging
    """
    context = context or {}

    log_data = {
        "exception_type": type(exception).__name__,
        "exception_message": str(exception),
        **context,
    }

    if isinstance(exception, AppException):
        message = f"{exception.error_code.value}: {exception.message}"
        log_data.update(
            {
                "error_code": exception.error_code.value,
                "severity": exception.severity.value,
                "is_retryable": exception.is_retryable,
            }
        )
    else:
        message = f"Unhandled exception: {type(exception).__name__}: {str(exception)}"
        log_data["traceback"] = traceback.format_exc()

    logger.log(level, message, extra={"error_context": log_data})
