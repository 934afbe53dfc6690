"""Validation utilities for the energy arbitrage engine."""

import math
from typing import Any, Iterable, Optional, Union, Type, Tuple

from .exceptions import ValidationError, ValidationTypeError, ValidationRangeError

class Validator:
    """Base validator class."""
    
    @staticmethod
    def validate_type(value: Any, expected_type: Union[Type, Tuple[Type, ...]]) -> None:
        """Validate value type."""
        # bool is an int subclass but never a valid quantity
        if isinstance(value, bool) or not isinstance(value, expected_type):
            expected = (
                " or ".join(t.__name__ for t in expected_type)
                if isinstance(expected_type, tuple) else expected_type.__name__
            )
            raise ValidationTypeError(
                f"Expected type {expected}, got {type(value).__name__}"
            )

    @staticmethod
    def validate_range(
        value: Union[int, float],
        min_value: Optional[Union[int, float]] = None,
        max_value: Optional[Union[int, float]] = None,
        exclusive_min: bool = False
    ) -> None:
        """Validate numeric range; NaN and infinities are never in range."""
        if not math.isfinite(value):
            raise ValidationRangeError(f"Value {value} must be finite")
        
        if min_value is not None:
            if exclusive_min and value <= min_value:
                raise ValidationRangeError(f"Value {value} must be greater than {min_value}")
            if value < min_value:
                raise ValidationRangeError(f"Value {value} is below minimum {min_value}")
        
        if max_value is not None and value > max_value:
            raise ValidationRangeError(f"Value {value} exceeds maximum {max_value}")

class SiteValidator(Validator):
    """Validator for site configuration values."""
    
    @staticmethod
    def validate_identifier(site_id: Any) -> None:
        """Validate a site identifier."""
        if not site_id or not isinstance(site_id, str):
            raise ValidationError("Site identifier must be a non-empty string")
    
    @staticmethod
    def validate_capacity(capacity_mw: Any) -> None:
        """Validate site power capacity."""
        Validator.validate_type(capacity_mw, (int, float))
        Validator.validate_range(capacity_mw, min_value=0, exclusive_min=True)
    
    @staticmethod
    def validate_commitment(percent: Any) -> None:
        """Validate demand-response commitment percentage."""
        Validator.validate_type(percent, (int, float))
        Validator.validate_range(percent, min_value=0, max_value=100)
    
    @staticmethod
    def validate_payment(payment: Any) -> None:
        """Validate annual demand-response payment."""
        Validator.validate_type(payment, (int, float))
        Validator.validate_range(payment, min_value=0)

class EventValidator(Validator):
    """Validator for demand-response event requests."""
    
    @staticmethod
    def validate_duration(duration_hours: Any) -> None:
        """Validate event duration in hours."""
        Validator.validate_type(duration_hours, (int, float))
        Validator.validate_range(duration_hours, min_value=0, exclusive_min=True)
    
    @staticmethod
    def validate_affected_sites(affected_sites: Any, known_sites: Iterable[str]) -> None:
        """Validate that affected sites form a non-empty subset of known sites."""
        if isinstance(affected_sites, (str, bytes)) or not isinstance(affected_sites, (list, tuple, set, frozenset)):
            raise ValidationTypeError("affected_sites must be a list of site identifiers")
        
        if not affected_sites:
            raise ValidationError("affected_sites must not be empty")
        
        unknown = sorted(set(affected_sites) - set(known_sites))
        if unknown:
            raise ValidationError(f"Unknown sites: {', '.join(map(str, unknown))}")
