"""
Configuration primitives for the energy arbitrage engine.
Provides hierarchical, validatable configuration with YAML/JSON persistence.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Any, Union, List
from pathlib import Path
import yaml
import json
from enum import Enum
import logging


class ConfigFormat(Enum):
    """Supported configuration file formats."""
    YAML = "yaml"
    JSON = "json"


@dataclass
class ConfigValidationResult:
    """Result of configuration validation."""
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    
    def add_error(self, message: str) -> None:
        """Add a validation error."""
        self.errors.append(message)
        self.is_valid = False
    
    def add_warning(self, message: str) -> None:
        """Add a validation warning."""
        self.warnings.append(message)
    
    def extend(self, other: 'ConfigValidationResult', prefix: str = "") -> None:
        """Fold another result into this one, prefixing its messages."""
        for error in other.errors:
            self.add_error(f"{prefix}{error}")
        for warning in other.warnings:
            self.add_warning(f"{prefix}{warning}")


class BaseConfig(ABC):
    """Abstract base class for all configuration objects."""
    
    @property
    def logger(self) -> logging.Logger:
        return logging.getLogger(f"energy_arbitrage.config.{self.__class__.__name__}")
    
    @abstractmethod
    def validate(self) -> ConfigValidationResult:
        """Validate the configuration."""
        pass
    
    @abstractmethod
    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        pass
    
    @classmethod
    @abstractmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BaseConfig':
        """Create configuration from dictionary."""
        pass
    
    def save_to_file(self, file_path: Union[str, Path], format: ConfigFormat = ConfigFormat.YAML) -> None:
        """Save configuration to file."""
        file_path = Path(file_path)
        data = self.to_dict()
        
        if format == ConfigFormat.YAML:
            with open(file_path, 'w') as f:
                yaml.safe_dump(data, f, default_flow_style=False, indent=2, sort_keys=False)
        elif format == ConfigFormat.JSON:
            with open(file_path, 'w') as f:
                json.dump(data, f, indent=2)
        else:
            raise ValueError(f"Unsupported format: {format}")
    
    @classmethod
    def load_from_file(cls, file_path: Union[str, Path]) -> 'BaseConfig':
        """Load configuration from file."""
        file_path = Path(file_path)
        
        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")
        
        if file_path.suffix.lower() in ['.yaml', '.yml']:
            with open(file_path, 'r') as f:
                data = yaml.safe_load(f)
        elif file_path.suffix.lower() == '.json':
            with open(file_path, 'r') as f:
                data = json.load(f)
        else:
            raise ValueError(f"Unsupported file format: {file_path.suffix}")
        
        return cls.from_dict(data or {})
    
    def merge(self, other: 'BaseConfig') -> 'BaseConfig':
        """Merge this configuration with another."""
        merged = self._deep_merge(self.to_dict(), other.to_dict())
        return self.__class__.from_dict(merged)
    
    @staticmethod
    def _deep_merge(dict1: Dict[str, Any], dict2: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = dict1.copy()
        
        for key, value in dict2.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = BaseConfig._deep_merge(result[key], value)
            else:
                result[key] = value
        
        return result
