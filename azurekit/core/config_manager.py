"""
Configuration management for AzureKit.

Loads client settings (storage account, management subscription, retry
and polling behaviour, logging) and validates them with pydantic.
"""

import os
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional
from enum import Enum

import yaml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

from azurekit.core.logging_config import REDACTED, setup_logging_from_config
from azurekit.transport.retry_policy import BackoffShape, RetryPolicy

logger = logging.getLogger(__name__)


class LogLevel(str, Enum):
    """Valid log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageConfig(BaseModel):
    """Blob storage account settings."""
    account: str = ""
    key: str = Field(default="", description="Base64 account key; empty for anonymous access")
    location: str = Field(default="", description="Region, selects the API endpoint")


class ManagementConfig(BaseModel):
    """Service management API settings."""
    subscription_id: str = ""
    cert_file: str = Field(default="", description="PEM file with certificate and private key")
    location: str = ""


class RetryPolicyConfig(BaseModel):
    """Retry behaviour for transient failures."""
    nb_retries: int = Field(default=0, ge=0)
    http_status_codes: List[int] = Field(
        default_factory=lambda: [408, 500, 502, 503, 504],
        description="Response statuses retried when nb_retries > 0"
    )
    delay: float = Field(default=1.0, ge=0.0)
    backoff: BackoffShape = BackoffShape.EXPONENTIAL
    max_delay: float = Field(default=30.0, ge=0.0)
    deadline: Optional[float] = Field(default=None, gt=0.0)
    retry_on_connection_errors: bool = True

    def to_policy(self) -> RetryPolicy:
        """Build the RetryPolicy described by this configuration."""
        return RetryPolicy(
            nb_retries=self.nb_retries,
            http_status_codes=tuple(self.http_status_codes),
            delay=self.delay,
            backoff=BackoffShape(self.backoff),
            max_delay=self.max_delay,
            deadline=self.deadline,
            retry_on_connection_errors=self.retry_on_connection_errors,
        )


class PollerConfig(BaseModel):
    """Asynchronous operation polling; interval 0 disables polling."""
    interval: float = Field(default=10.0, ge=0.0)
    timeout: float = Field(default=1200.0, gt=0.0)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    model_config = ConfigDict(use_enum_values=True)

    level: LogLevel = LogLevel.INFO
    format: str = "text"
    file: Optional[str] = None
    rotation_size: str = "10MB"
    rotation_count: int = 5
    module_levels: Optional[Dict[str, str]] = Field(
        default=None,
        description="Per-module log levels, e.g., {'azurekit.management.poller': 'DEBUG'}"
    )


class AzureKitConfig(BaseModel):
    """Main AzureKit configuration schema."""

    version: str = Field(default="0.1.0", description="Configuration version")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    management: ManagementConfig = Field(default_factory=ManagementConfig)
    retry: RetryPolicyConfig = Field(default_factory=RetryPolicyConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Validate version format."""
        parts = v.split(".")
        if len(parts) != 3 or not all(part.isdigit() for part in parts):
            raise ValueError("Version must be in format x.y.z")
        return v

    model_config = ConfigDict(use_enum_values=True)


# Environment variable -> (section, field, converter)
_ENV_SETTINGS = {
    "AZUREKIT_STORAGE_ACCOUNT": ("storage", "account", str),
    "AZUREKIT_STORAGE_KEY": ("storage", "key", str),
    "AZUREKIT_STORAGE_LOCATION": ("storage", "location", str),
    "AZUREKIT_SUBSCRIPTION_ID": ("management", "subscription_id", str),
    "AZUREKIT_CERT_FILE": ("management", "cert_file", str),
    "AZUREKIT_MANAGEMENT_LOCATION": ("management", "location", str),
    "AZUREKIT_RETRY_COUNT": ("retry", "nb_retries", int),
    "AZUREKIT_RETRY_DELAY": ("retry", "delay", float),
    "AZUREKIT_POLL_INTERVAL": ("poller", "interval", float),
    "AZUREKIT_POLL_TIMEOUT": ("poller", "timeout", float),
    "AZUREKIT_LOG_LEVEL": ("logging", "level", str.upper),
    "AZUREKIT_LOG_FILE": ("logging", "file", str),
}


class ConfigManager:
    """
    Loads and validates AzureKit configuration.

    Configuration precedence (highest to lowest):
    1. Explicit overrides
    2. Environment variables (AZUREKIT_*)
    3. Configuration file (YAML/JSON)
    4. Defaults
    """

    def __init__(self):
        self._config: Optional[AzureKitConfig] = None
        self._config_file: Optional[Path] = None
        self._overrides: Optional[Dict[str, Any]] = None

    def load(
        self,
        config_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None
    ) -> AzureKitConfig:
        """
        Load and validate configuration from all sources.

        Args:
            config_file: Path to configuration file (YAML or JSON)
            overrides: Nested dictionary applied last

        Returns:
            Validated AzureKitConfig instance

        Raises:
            ValidationError: If configuration is invalid
            FileNotFoundError: If the config file doesn't exist
            ValueError: If the file format is unsupported or an environment
                variable has the wrong type
        """
        config_dict: Dict[str, Any] = {}

        if config_file:
            config_dict = self._load_from_file(config_file)
            self._config_file = Path(config_file)
            logger.info(f"Loaded configuration from file: {config_file}")

        env_config = self._load_from_env()
        config_dict = self._merge_configs(config_dict, env_config)
        if env_config:
            logger.debug(f"Applied environment overrides for sections: {sorted(env_config)}")

        if overrides:
            config_dict = self._merge_configs(config_dict, overrides)
            self._overrides = overrides

        try:
            self._config = AzureKitConfig(**config_dict)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise
        self._log_configuration()
        return self._config

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        path = Path(file_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {file_path}")

        with open(path, 'r') as f:
            if path.suffix in ['.yaml', '.yml']:
                return yaml.safe_load(f) or {}
            elif path.suffix == '.json':
                return json.load(f)
            else:
                raise ValueError(f"Unsupported config file format: {path.suffix}")

    def _load_from_env(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {}
        for name, (section, field, convert) in _ENV_SETTINGS.items():
            value = os.getenv(name)
            if value:
                config.setdefault(section, {})[field] = convert(value)
        return config

    def _merge_configs(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two configuration dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_configs(result[key], value)
            else:
                result[key] = value
        return result

    def redacted_config(self) -> Dict[str, Any]:
        """The active configuration as a dict, with the account key masked."""
        config_dict = self.get_config().model_dump()
        if config_dict["storage"]["key"]:
            config_dict["storage"]["key"] = REDACTED
        return config_dict

    def _log_configuration(self) -> None:
        logger.debug(f"Active configuration: {json.dumps(self.redacted_config(), indent=2)}")

    def get_config(self) -> AzureKitConfig:
        """
        Get the loaded configuration.

        Raises:
            RuntimeError: If configuration hasn't been loaded
        """
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load() first.")
        return self._config

    def apply_logging(self) -> None:
        """
        Configure the ``azurekit`` loggers from the loaded ``logging`` section.

        Not done by ``load()``, so that applications managing their own
        logging can still read a configuration file.
        """
        setup_logging_from_config(self.get_config().logging)

    def reload(self) -> AzureKitConfig:
        """Reload configuration from the same file and overrides."""
        config_file = str(self._config_file) if self._config_file else None
        return self.load(config_file=config_file, overrides=self._overrides)
