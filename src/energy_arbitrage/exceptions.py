"""Custom exceptions for the energy arbitrage engine."""

class ArbitrageError(Exception):
    """Base exception for energy arbitrage errors."""
    pass

class ConfigurationError(ArbitrageError):
    """Exception raised for configuration errors."""
    pass

class ValidationError(ArbitrageError):
    """Base exception for validation errors."""
    pass

class ValidationTypeError(ValidationError):
    """Exception raised for type validation errors."""
    pass

class ValidationRangeError(ValidationError):
    """Exception raised for range validation errors."""
    pass

class DemandResponseError(ArbitrageError):
    """Exception raised for demand-response control errors."""
    pass

class InvalidEventError(DemandResponseError):
    """Exception raised when a demand-response event request is malformed."""
    pass

class NoActiveEventError(DemandResponseError):
    """Exception raised when ending a demand-response event while none is active."""
    pass

class DREventLimitError(DemandResponseError):
    """Exception raised when the annual demand-response event cap is reached."""
    pass

class EngineError(ArbitrageError):
    """Exception raised for engine lifecycle errors."""
    pass
