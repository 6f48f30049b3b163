#!/usr/bin/env python3
"""
Configuration Manager for the director artifact cleaner

This module handles loading and managing configuration from config.yaml
and environment variables.
"""

import logging
import os
from typing import Any, Dict, Optional

import yaml


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""


DEFAULT_CONFIG: Dict[str, Any] = {
    "cleanup": {
        "max_threads": 32,
        "keep_count": 2,
        "release_lock_timeout": 10,
        "remove_all": False,
    },
    "mongo": {"host": "director-db", "port": 27017, "replicaset": "rs0", "db": "director"},
    "cloud": {"provider": "aws", "region": "us-west-2"},
    "retry": {
        "max_retries": 3,
        "initial_delay": 1.0,
        "max_delay": 60.0,
        "exponential_base": 2.0,
        "jitter": True,
    },
    "reports": {"output_dir": "reports", "cleanup_report": "cleanup-artifacts.json"},
    "logging": {"level": "INFO"},
}

SUPPORTED_CLOUD_PROVIDERS = ("aws",)

TRUE_VALUES = ("true", "yes", "on", "1")
FALSE_VALUES = ("false", "no", "off", "0")


def parse_bool(value: Any, field: str) -> bool:
    """Accept a real bool or an explicit true/false string; anything else is rejected"""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_VALUES:
            return True
        if lowered in FALSE_VALUES:
            return False
    raise ConfigValidationError(f"{field} must be a boolean, got: {value!r} (type: {type(value).__name__})")


class ConfigManager:
    """Manages configuration for the artifact cleaner"""

    def __init__(self, config_file: str = None, validate: bool = True):
        """Initialize ConfigManager

        Args:
            config_file: Path to configuration YAML file (defaults to CONFIG_FILE env var or config.yaml)
            validate: If True, validate configuration on initialization
        """
        if config_file is None:
            config_file = os.environ.get("CONFIG_FILE", "config.yaml")
        self.config_file = config_file
        self.config = self._load_config()

        if validate:
            self.validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file with defaults"""
        try:
            if os.path.exists(self.config_file):
                with open(self.config_file, "r") as f:
                    user_config = yaml.safe_load(f) or {}
                return self._merge_config(DEFAULT_CONFIG, user_config)
            else:
                logging.warning(f"Config file {self.config_file} not found, using defaults")
                return self._merge_config(DEFAULT_CONFIG, {})
        except yaml.YAMLError as e:
            logging.error(f"Error loading config file: {e}")
            return self._merge_config(DEFAULT_CONFIG, {})

    def _merge_config(self, default: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively merge user config with defaults"""
        result = {key: dict(value) if isinstance(value, dict) else value for key, value in default.items()}
        for key, value in user.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value
        return result

    def _get_int(self, section: str, key: str, env_var: Optional[str] = None) -> int:
        value = os.environ.get(env_var) if env_var else None
        if value is None:
            value = self.config.get(section, {}).get(key, DEFAULT_CONFIG[section][key])
        try:
            return int(value)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"{section}.{key} must be an integer, got: {value} (type: {type(value).__name__})"
            )

    def _get_float(self, section: str, key: str) -> float:
        value = self.config.get(section, {}).get(key, DEFAULT_CONFIG[section][key])
        try:
            return float(value)
        except (ValueError, TypeError):
            raise ConfigValidationError(
                f"{section}.{key} must be a number, got: {value} (type: {type(value).__name__})"
            )

    # Cleanup configuration
    def get_max_threads(self) -> int:
        """Get the deletion pool size (env CLEANUP_MAX_THREADS overrides config)"""
        return self._get_int("cleanup", "max_threads", "CLEANUP_MAX_THREADS")

    def get_keep_count(self) -> int:
        """Get how many most-recent versions per name survive a regular cleanup"""
        return self._get_int("cleanup", "keep_count")

    def get_release_lock_timeout(self) -> float:
        """Get the release lock wait in seconds"""
        return self._get_float("cleanup", "release_lock_timeout")

    def get_remove_all_default(self) -> bool:
        return parse_bool(self.config["cleanup"].get("remove_all", False), "cleanup.remove_all")

    # Mongo configuration
    def get_mongo_host(self) -> str:
        return os.environ.get("MONGODB_HOST") or self.config["mongo"]["host"]

    def get_mongo_port(self) -> int:
        """Get MongoDB port from config, with type coercion"""
        return self._get_int("mongo", "port")

    def get_mongo_replicaset(self) -> str:
        return self.config["mongo"]["replicaset"]

    def get_mongo_db(self) -> str:
        return self.config["mongo"]["db"]

    def get_mongo_auth(self) -> Optional[str]:
        username = os.environ.get("MONGODB_USERNAME", "admin")
        password = os.environ.get("MONGODB_PASSWORD")
        if password:
            return f"{username}:{password}"
        return None

    def get_mongo_connection_string(self) -> str:
        auth = self.get_mongo_auth()
        host = self.get_mongo_host()
        port = self.get_mongo_port()
        rs = self.get_mongo_replicaset()
        prefix = f"{auth}@" if auth else ""
        suffix = f"/?replicaSet={rs}" if rs else "/"
        return f"mongodb://{prefix}{host}:{port}{suffix}"

    # Cloud configuration
    def get_cloud_provider(self) -> str:
        return str(self.config["cloud"]["provider"]).lower()

    def get_cloud_region(self) -> str:
        return os.environ.get("AWS_DEFAULT_REGION") or self.config["cloud"]["region"]

    # Retry configuration
    def get_max_retries(self) -> int:
        """Get max retries from config, with type coercion"""
        return self._get_int("retry", "max_retries")

    def get_retry_initial_delay(self) -> float:
        return self._get_float("retry", "initial_delay")

    def get_retry_max_delay(self) -> float:
        return self._get_float("retry", "max_delay")

    def get_retry_exponential_base(self) -> float:
        return self._get_float("retry", "exponential_base")

    def get_retry_jitter(self) -> bool:
        """Get whether to use jitter in retry delays from config"""
        return parse_bool(self.config["retry"].get("jitter", True), "retry.jitter")

    def get_retry_settings(self) -> Dict[str, Any]:
        """Keyword arguments for utils.retry_utils.retry_operation"""
        return {
            "max_retries": self.get_max_retries(),
            "initial_delay": self.get_retry_initial_delay(),
            "max_delay": self.get_retry_max_delay(),
            "exponential_base": self.get_retry_exponential_base(),
            "jitter": self.get_retry_jitter(),
        }

    # Reports and logging
    def get_output_dir(self) -> str:
        """Get output directory from config"""
        return os.environ.get("REPORTS_DIR") or self.config["reports"]["output_dir"]

    def get_cleanup_report_path(self) -> str:
        path = self.config["reports"]["cleanup_report"]
        if os.path.isabs(path):
            return path
        return os.path.join(self.get_output_dir(), path)

    def get_log_level(self) -> str:
        return os.environ.get("LOG_LEVEL") or str(self.config["logging"]["level"])

    def validate_config(self) -> None:
        """Validate configuration values

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        errors = []
        warnings = []

        max_threads = self.get_max_threads()
        if max_threads < 1:
            errors.append(f"cleanup.max_threads must be a positive integer, got: {max_threads}")
        elif max_threads > 256:
            warnings.append(f"cleanup.max_threads is very high ({max_threads}), this may overload the cloud API")

        keep_count = self.get_keep_count()
        if keep_count < 0:
            errors.append(f"cleanup.keep_count must be a non-negative integer, got: {keep_count}")
        elif keep_count == 0:
            warnings.append("cleanup.keep_count is 0, every unused release and stemcell version will be deleted")

        lock_timeout = self.get_release_lock_timeout()
        if lock_timeout <= 0:
            errors.append(f"cleanup.release_lock_timeout must be a positive number, got: {lock_timeout}")

        # raise on values that are not booleans
        self.get_remove_all_default()
        self.get_retry_jitter()

        mongo_host = self.get_mongo_host()
        if not mongo_host or not str(mongo_host).strip():
            errors.append("MongoDB host is required and cannot be empty")

        mongo_port = self.get_mongo_port()
        if mongo_port < 1 or mongo_port > 65535:
            errors.append(f"MongoDB port must be an integer between 1 and 65535, got: {mongo_port}")

        mongo_db = self.get_mongo_db()
        if not mongo_db or not str(mongo_db).strip():
            errors.append("MongoDB database name is required and cannot be empty")

        provider = self.get_cloud_provider()
        if provider not in SUPPORTED_CLOUD_PROVIDERS:
            errors.append(
                f"cloud.provider '{provider}' is not supported (expected one of: {', '.join(SUPPORTED_CLOUD_PROVIDERS)})"
            )

        max_retries = self.get_max_retries()
        if max_retries < 0:
            errors.append(f"retry.max_retries must be a non-negative integer, got: {max_retries}")
        elif max_retries > 10:
            warnings.append(f"max_retries is very high ({max_retries}), operations may take a long time")

        initial_delay = self.get_retry_initial_delay()
        if initial_delay < 0:
            errors.append(f"retry.initial_delay must be a non-negative number, got: {initial_delay}")

        max_delay = self.get_retry_max_delay()
        if max_delay < 0:
            errors.append(f"retry.max_delay must be a non-negative number, got: {max_delay}")
        elif max_delay < initial_delay:
            errors.append(f"retry.max_delay ({max_delay}) must be >= retry.initial_delay ({initial_delay})")

        exponential_base = self.get_retry_exponential_base()
        if exponential_base < 1.0:
            errors.append(f"retry.exponential_base must be >= 1.0, got: {exponential_base}")

        output_dir = self.get_output_dir()
        if not output_dir or not str(output_dir).strip():
            errors.append("reports.output_dir is required and cannot be empty")

        for warning in warnings:
            logging.warning(f"Configuration warning: {warning}")

        if errors:
            error_msg = "Configuration validation failed:\n  " + "\n  ".join(errors)
            logging.error(error_msg)
            raise ConfigValidationError(error_msg)

    def print_config(self):
        """Print current configuration"""
        print("Current Configuration:")
        print(f"  Max Threads: {self.get_max_threads()}")
        print(f"  Keep Count: {self.get_keep_count()}")
        print(f"  Release Lock Timeout: {self.get_release_lock_timeout()}s")
        print(f"  MongoDB: {self.get_mongo_host()}:{self.get_mongo_port()}/{self.get_mongo_db()}")
        print(f"  Cloud: {self.get_cloud_provider()} ({self.get_cloud_region()})")
        print(f"  Output Directory: {self.get_output_dir()}")

        if self.get_mongo_auth():
            print("  MongoDB Credentials: set")
        else:
            print("  MongoDB Credentials: Not set")
