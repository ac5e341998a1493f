"""Custom exception types for the ADO flow metrics exporter."""


class FlowMetricsError(Exception):
    """Base exception for all recoverable flow metrics errors."""


class ConfigurationError(FlowMetricsError):
    """Raised when runtime configuration values are missing or invalid."""


class AuthenticationError(FlowMetricsError):
    """Raised when Azure DevOps authentication credentials are unavailable or invalid."""


class ApiError(FlowMetricsError):
    """Raised when an Azure DevOps API request fails or returns an unexpected response."""


class DataValidationError(FlowMetricsError):
    """Raised when API payloads or board configuration do not meet expected constraints."""
