"""
Custom application exceptions
"""

from typing import Optional, Dict, Any, List


class AdoptionInsightsException(Exception):
    """Base exception for the adoption insights backend"""

    def __init__(
        self,
        message: str,
        code: str,
        status_code: int = 400,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(AdoptionInsightsException):
    """Validation errors with per-field messages"""

    def __init__(self, message: str, field_errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(
            message=message,
            code="VALIDATION_ERROR",
            status_code=400,
            details=field_errors or {}
        )

    @property
    def field_errors(self) -> Dict[str, List[str]]:
        return self.details


class ConfigurationError(AdoptionInsightsException):
    """Raised when an adapter is used before it has been configured"""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            status_code=500
        )


class PartitionError(AdoptionInsightsException):
    """Partition management errors"""

    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            message=message,
            code="PARTITION_ERROR",
            status_code=500,
            details=details
        )


class PartitionRetriesExhaustedError(PartitionError):
    """Partition creation gave up after the configured number of attempts"""

    def __init__(self, key: str, max_retries: int):
        self.key = key
        super().__init__(
            message=f"Max retries reached for partition {key}",
            details={"partition": key, "max_retries": max_retries}
        )
