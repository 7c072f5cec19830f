"""
Sistema de manejo de errores personalizado.

Este módulo define todas las excepciones personalizadas de la aplicación.
Cada una lleva código de error, código HTTP y severidad.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorCode(Enum):
    """
    Códigos de error estandardizados para la aplicación.
    """

    # Errores generales
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Errores de conexión
    DATABASE_ERROR = "DATABASE_ERROR"
    SHOPIFY_API_ERROR = "SHOPIFY_API_ERROR"

    # Errores de API
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Errores de operaciones bulk
    OPERATION_CONFLICT = "OPERATION_CONFLICT"
    OPERATION_NOT_FOUND = "OPERATION_NOT_FOUND"
    REMOTE_VALIDATION_FAILED = "REMOTE_VALIDATION_FAILED"
    UNDO_NOT_ALLOWED = "UNDO_NOT_ALLOWED"
    RESULT_PARSE_ERROR = "RESULT_PARSE_ERROR"


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

    def __str__(self) -> str:
        return self.message


class ValidationException(AppException):
    """
    Excepción para errores de validación de datos de entrada.

    Se lanza antes de cualquier llamada remota; nunca persiste nada.
    """

    def __init__(
        self,
        message: str,
        field: str,
        invalid_value: Any = None,
        **kwargs,
    ):
        """
        Inicializa la excepción de validación.

        Args:
            message: Mensaje de error
            field: Campo que falló la validación
            invalid_value: Valor que causó el error
            **kwargs: Argumentos adicionales para AppException
        """
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            status_code=422,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.field = field
        self.invalid_value = invalid_value

        self.details.update(
            {
                "field": field,
                "invalid_value": str(invalid_value) if invalid_value is not None else None,
            }
        )


class ConflictException(AppException):
    """
    Excepción cuando ya existe una operación activa para la tienda.
    """

    def __init__(self, message: str, shop: str, active_operation_id: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.OPERATION_CONFLICT,
            status_code=409,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.shop = shop
        self.active_operation_id = active_operation_id
        self.details.update({"shop": shop, "active_operation_id": active_operation_id})


class OperationNotFoundException(AppException):
    """
    Excepción cuando no existe la operación solicitada.
    """

    def __init__(self, operation_id: str, **kwargs):
        super().__init__(
            message=f"Operation {operation_id} not found",
            error_code=ErrorCode.OPERATION_NOT_FOUND,
            status_code=404,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.operation_id = operation_id
        self.details.update({"operation_id": operation_id})


class UndoIneligibleException(AppException):
    """
    Excepción cuando una operación no puede deshacerse.
    """

    def __init__(self, message: str, operation_id: str, reason: str, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.UNDO_NOT_ALLOWED,
            status_code=409,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.operation_id = operation_id
        self.reason = reason
        self.details.update({"operation_id": operation_id, "reason": reason})


class ShopifyAPIException(AppException):
    """
    Excepción para errores de la API de Shopify (red, HTTP o GraphQL).
    """

    def __init__(
        self,
        message: str,
        api_response_code: Optional[int] = None,
        endpoint: Optional[str] = None,
        is_retryable: bool = True,
        **kwargs,
    ):
        """
        Inicializa la excepción de Shopify API.

        Args:
            message: Mensaje de error
            api_response_code: Código de respuesta de Shopify
            endpoint: Endpoint que falló
            is_retryable: Si el transporte debe reintentar
            **kwargs: Argumentos adicionales para AppException
        """
        severity = ErrorSeverity.MEDIUM
        if api_response_code and api_response_code >= 500:
            severity = ErrorSeverity.HIGH

        super().__init__(
            message=message,
            error_code=ErrorCode.SHOPIFY_API_ERROR,
            status_code=503,
            severity=severity,
            is_retryable=is_retryable,
            **kwargs,
        )

        self.api_response_code = api_response_code
        self.endpoint = endpoint
        self.details.update({"api_response_code": api_response_code, "endpoint": endpoint})


class RateLimitException(ShopifyAPIException):
    """
    Excepción para errores de throttling de la API GraphQL.
    """

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        """
        Inicializa la excepción de rate limiting.

        Args:
            message: Mensaje de error
            retry_after: Segundos sugeridos para reintentar
            **kwargs: Argumentos adicionales para ShopifyAPIException
        """
        super().__init__(message=message, api_response_code=429, **kwargs)
        self.error_code = ErrorCode.RATE_LIMIT_EXCEEDED
        self.status_code = 429
        self.severity = ErrorSeverity.LOW
        self.retry_after = retry_after
        self.details.update({"retry_after": retry_after})


class RemoteValidationException(AppException):
    """
    Excepción para userErrors devueltos por Shopify al enviar un job bulk.
    """

    def __init__(self, user_errors: List[Dict[str, Any]], **kwargs):
        messages = [error.get("message", "Unknown error") for error in user_errors]
        super().__init__(
            message="\n".join(messages) or "Failed to start bulk operation.",
            error_code=ErrorCode.REMOTE_VALIDATION_FAILED,
            status_code=422,
            severity=ErrorSeverity.MEDIUM,
            **kwargs,
        )
        self.user_errors = user_errors
        self.details.update({"user_errors": user_errors})


class ResultParseException(AppException):
    """
    Error al interpretar una línea del archivo de resultados.

    Se convierte en una entrada de error del resumen; nunca se propaga.
    """

    def __init__(self, line_number: int, reason: str, **kwargs):
        super().__init__(
            message=f"Failed to parse result line {line_number}",
            error_code=ErrorCode.RESULT_PARSE_ERROR,
            severity=ErrorSeverity.LOW,
            **kwargs,
        )
        self.line_number = line_number
        self.reason = reason
        self.details.update({"line_number": line_number, "reason": reason})


class DatabaseException(AppException):
    """
    Excepción para errores del almacén de operaciones.
    """

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message=message,
            error_code=ErrorCode.DATABASE_ERROR,
            status_code=503,
            severity=ErrorSeverity.HIGH,
            **kwargs,
        )
