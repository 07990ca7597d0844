#!/usr/bin/env python3
"""
Configuration Manager for the registry cleaner

This module handles loading and managing configuration from config.yaml
and environment variables. Environment variables take precedence over the
file, the file over the built-in defaults.
"""

import logging
import os
from typing import Any, Dict, Optional

import yaml

from registry_cleaner.error_utils import create_config_error
from registry_cleaner.models import RegistryCredential


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


_TRUE_VALUES = ("true", "1", "yes", "on")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


class ConfigManager:
    """Manages configuration for the registry cleaner"""

    LOG_FORMATS = ("text", "json")

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to config.yaml or CONFIG_FILE env var)
            validate: If True, validate configuration on initialization
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()
        self._overrides: Dict[str, Any] = {}

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        default_config = {
            "dockerhub": {
                "repository": "",
                "username": "",
                "password": "",
                "hub_api": "https://hub.docker.com/v2",
                "registry_api": "https://registry-1.docker.io/v2",
                "auth_url": "https://auth.docker.io/token",
                "allow_missing_registry_token": False,
            },
            "ghcr": {
                "repository": "",
                "username": "",
                "token": "",
                "api": "https://api.github.com",
            },
            "filters": {"prefix": "", "max_age_days": None},
            "analysis": {"max_workers": 4, "page_size": 100},
            "retry": {
                "max_retries": 3,
                "initial_delay": 1.0,
                "max_delay": 60.0,
                "exponential_base": 2.0,
                "jitter": True,
                "timeout": 30,  # Timeout for HTTP requests in seconds
            },
            "rate_limit": {
                "enabled": True,
                "requests_per_second": 10.0,  # Max requests per second
                "burst_size": 20,  # Allow burst of up to N requests
            },
            "logging": {"format": "text", "level": "INFO"},
            "run": {"fail_fast": False, "parallel_providers": True},
        }

        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                return self._merge_config(default_config, user_config)
            else:
                logging.debug(f"Config file {self.config_file} not found, using defaults")
                return default_config
        except (OSError, yaml.YAMLError) as e:
            logging.error(f"Error loading config file: {e}")
            return default_config

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = default.copy()
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _get(self, section: str, key: str, env: Optional[str] = None, default: Any = None) -> Any:
        """Look up a value: CLI override, then environment, then config file/defaults"""
        override_key = f"{section}.{key}"
        if override_key in self._overrides:
            return self._overrides[override_key]
        if env:
            value = os.environ.get(env)
            if value not in (None, ""):
                return value
        return self.config.get(section, {}).get(key, default)

    def apply_overrides(self, **overrides: Any) -> None:
        """Apply command line overrides given as ``section_key=value``; None values are ignored."""
        for name, value in overrides.items():
            if value is None:
                continue
            section, _, key = name.partition("_")
            self._overrides[f"{section}.{key}"] = value

    # Docker Hub configuration
    def get_dockerhub_credential(self) -> Optional[RegistryCredential]:
        """Docker Hub credential, or None when repository, username or password is missing"""
        repository = self._get("dockerhub", "repository", "DOCKERHUB_REPO")
        username = self._get("dockerhub", "username", "DOCKERHUB_USERNAME")
        password = self._get("dockerhub", "password", "DOCKERHUB_PASSWORD")
        if not (repository and username and password):
            return None
        return RegistryCredential("dockerhub", str(repository), str(username), str(password))

    def get_dockerhub_hub_api(self) -> str:
        return self._get("dockerhub", "hub_api")

    def get_dockerhub_registry_api(self) -> str:
        return self._get("dockerhub", "registry_api")

    def get_dockerhub_auth_url(self) -> str:
        return self._get("dockerhub", "auth_url")

    def get_dockerhub_allow_missing_registry_token(self) -> bool:
        return _as_bool(self._get("dockerhub", "allow_missing_registry_token"))

    # GHCR configuration
    def get_ghcr_credential(self) -> Optional[RegistryCredential]:
        """GHCR credential, or None when repository or token is missing. Username is optional."""
        repository = self._get("ghcr", "repository", "GHCR_REPO")
        token = self._get("ghcr", "token", "GHCR_TOKEN")
        username = self._get("ghcr", "username", "GHCR_USERNAME")
        if not (repository and token):
            return None
        return RegistryCredential("ghcr", str(repository), str(username) if username else None, str(token))

    def get_ghcr_api(self) -> str:
        return self._get("ghcr", "api")

    # Filter configuration
    def get_prefix(self) -> Optional[str]:
        """Tag prefix filter; empty means no prefix filter"""
        prefix = self._get("filters", "prefix", "IMAGE_PREFIX")
        return str(prefix) if prefix else None

    def get_max_age_days(self) -> Optional[int]:
        """Max age in days, with type coercion; None disables the age filter"""
        days = self._get("filters", "max_age_days", "MAX_AGE_DAYS")
        if days in (None, ""):
            return None
        try:
            days = int(days)
        except (ValueError, TypeError):
            raise ConfigValidationError(str(create_config_error("filters.max_age_days", days, "not an integer")))
        if days < 0:
            raise ConfigValidationError(str(create_config_error("filters.max_age_days", days, "negative value")))
        return days

    # Analysis configuration
    def get_max_workers(self) -> int:
        """Get max workers from config, with type coercion"""
        workers = self._get("analysis", "max_workers", "MAX_WORKERS")
        try:
            return int(workers)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"max_workers must be an integer, got: {workers} (type: {type(workers).__name__})"
            )

    def get_page_size(self) -> int:
        size = self._get("analysis", "page_size", default=100)
        try:
            return int(size)
        except (ValueError, TypeError):
            raise ConfigValidationError(f"analysis.page_size must be an integer, got: {size}")

    # Retry configuration
    def get_max_retries(self) -> int:
        """Get max retries from config, with type coercion"""
        retries = self.config.get("retry", {}).get("max_retries", 3)
        try:
            return int(retries)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.max_retries must be an integer, got: {retries} (type: {type(retries).__name__})"
            )

    def get_retry_initial_delay(self) -> float:
        """Get initial retry delay from config, with type coercion"""
        delay = self.config.get("retry", {}).get("initial_delay", 1.0)
        try:
            return float(delay)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.initial_delay must be a number, got: {delay} (type: {type(delay).__name__})"
            )

    def get_retry_max_delay(self) -> float:
        """Get max retry delay from config, with type coercion"""
        delay = self.config.get("retry", {}).get("max_delay", 60.0)
        try:
            return float(delay)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.max_delay must be a number, got: {delay} (type: {type(delay).__name__})"
            )

    def get_retry_exponential_base(self) -> float:
        """Get exponential base for retry backoff from config, with type coercion"""
        base = self.config.get("retry", {}).get("exponential_base", 2.0)
        try:
            return float(base)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.exponential_base must be a number, got: {base} (type: {type(base).__name__})"
            )

    def get_retry_jitter(self) -> bool:
        """Get whether to use jitter in retry delays from config"""
        return _as_bool(self.config.get("retry", {}).get("jitter", True))

    def get_retry_timeout(self) -> int:
        """Get timeout for HTTP requests from config, with type coercion"""
        timeout = self.config.get("retry", {}).get("timeout", 30)
        try:
            return int(timeout)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"retry.timeout must be an integer, got: {timeout} (type: {type(timeout).__name__})"
            )

    # Rate limiting
    def get_rate_limit_enabled(self) -> bool:
        return _as_bool(self.config.get("rate_limit", {}).get("enabled", True))

    def get_rate_limit_rps(self) -> float:
        rps = self.config.get("rate_limit", {}).get("requests_per_second", 10.0)
        try:
            return float(rps)
        except (ValueError, TypeError):
            raise ConfigValidationError(f"rate_limit.requests_per_second must be a number, got: {rps}")

    def get_rate_limit_burst(self) -> int:
        burst = self.config.get("rate_limit", {}).get("burst_size", 20)
        try:
            return int(burst)
        except (ValueError, TypeError):
            raise ConfigValidationError(f"rate_limit.burst_size must be an integer, got: {burst}")

    # Logging
    def get_log_format(self) -> str:
        return str(self._get("logging", "format", "LOG_FMT", "text")).lower()

    def get_log_level(self) -> str:
        return str(self._get("logging", "level", "LOG_LEVEL", "INFO")).upper()

    # Run policy
    def is_fail_fast(self) -> bool:
        """Stop the whole run on the first pipeline-fatal error"""
        return _as_bool(self._get("run", "fail_fast", "FAIL_FAST"))

    def is_parallel_providers(self) -> bool:
        return _as_bool(self._get("run", "parallel_providers", default=True))

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        try:
            self.get_max_age_days()
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            max_workers = self.get_max_workers()
            if max_workers < 1:
                errors.append(f"max_workers must be a positive integer, got: {max_workers}")
            elif max_workers > 32:
                warnings.append(f"max_workers is very high ({max_workers}), registry rate limits may be hit")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            page_size = self.get_page_size()
            if page_size < 1 or page_size > 100:
                errors.append(f"analysis.page_size must be between 1 and 100, got: {page_size}")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            max_retries = self.get_max_retries()
            if max_retries < 0:
                errors.append(f"retry.max_retries must be a non-negative integer, got: {max_retries}")
            elif max_retries > 10:
                warnings.append(f"max_retries is very high ({max_retries}), operations may take a long time")

            initial_delay = self.get_retry_initial_delay()
            if initial_delay < 0:
                errors.append(f"retry.initial_delay must be a non-negative number, got: {initial_delay}")

            max_delay = self.get_retry_max_delay()
            if max_delay < initial_delay:
                errors.append(f"retry.max_delay ({max_delay}) must be >= retry.initial_delay ({initial_delay})")

            if self.get_retry_exponential_base() < 1.0:
                errors.append(f"retry.exponential_base must be >= 1.0, got: {self.get_retry_exponential_base()}")

            if self.get_retry_timeout() < 1:
                errors.append(f"retry.timeout must be a positive integer (seconds), got: {self.get_retry_timeout()}")
        except ConfigValidationError as e:
            errors.append(str(e))

        try:
            if self.get_rate_limit_enabled() and self.get_rate_limit_rps() <= 0:
                errors.append("rate_limit.requests_per_second must be positive when rate limiting is enabled")
        except ConfigValidationError as e:
            errors.append(str(e))

        log_format = self.get_log_format()
        if log_format not in self.LOG_FORMATS:
            errors.append(f"logging.format must be one of {', '.join(self.LOG_FORMATS)}, got: {log_format}")

        log_level = self.get_log_level()
        if not isinstance(logging.getLevelName(log_level), int):
            errors.append(f"logging.level must be a standard level name (DEBUG, INFO, WARNING, ERROR), got: {log_level}")

        ghcr = self.get_ghcr_credential()
        if ghcr:
            path = ghcr.repository[len("ghcr.io/"):] if ghcr.repository.startswith("ghcr.io/") else ghcr.repository
            if "/" not in path.strip("/"):
                errors.append(f"GHCR repository must look like ghcr.io/<owner>/<package>, got: {ghcr.repository}")

        dockerhub = self.get_dockerhub_credential()
        if dockerhub and "/" not in dockerhub.repository:
            warnings.append(
                f"Docker Hub repository '{dockerhub.repository}' has no namespace; expected <user>/<repo>"
            )

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def print_config(self):
        """Print current configuration with credentials masked"""
        dockerhub = self.get_dockerhub_credential()
        ghcr = self.get_ghcr_credential()

        print("Current Configuration:")
        print(f"  Docker Hub Repository: {dockerhub.repository if dockerhub else 'Not configured'}")
        if dockerhub:
            print(f"  Docker Hub Username: {dockerhub.username}")
            print(f"  Docker Hub Password: {'*' * 8}")
        print(f"  GHCR Repository: {ghcr.repository if ghcr else 'Not configured'}")
        if ghcr:
            print(f"  GHCR Token: {'*' * 8}")
        print(f"  Prefix: {self.get_prefix() or 'None'}")
        print(f"  Max Age Days: {self.get_max_age_days() if self.get_max_age_days() is not None else 'None'}")
        print(f"  Max Workers: {self.get_max_workers()}")
        print(f"  Log Format: {self.get_log_format()}")
        print(f"  Fail Fast: {self.is_fail_fast()}")
