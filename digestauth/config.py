"""
Configuration for the Digest Auth service.

Supports loading configuration from:
- YAML/JSON files
- Environment variables (a .env file is loaded first)
- Command line arguments
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Optional, Dict, Any, List
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

NONCE_STORE_BACKENDS = ("memory", "redis")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class DigestAuthConfig:
    """
    Digest Auth service configuration.

    Configuration priority (highest to lowest):
    1. Environment variables (prefixed with DIGEST_AUTH_)
    2. Configuration file (JSON or YAML)
    3. Default values

    Environment variables:
        DIGEST_AUTH_REALM: Realm sent in challenges (default: realm of the htdigest file, else "default")
        DIGEST_AUTH_NONCE_EXPIRE_TIMEOUT_MS: Nonce lifetime; negative expires nonces on the next challenge
        DIGEST_AUTH_PROTECTED_PATHS: Comma-separated path prefixes that require authentication
        DIGEST_AUTH_VERIFY_URI: Require the digest uri to match the request target (true/false)
        DIGEST_AUTH_HTDIGEST_FILE: Path to the htdigest credential file
        DIGEST_AUTH_NONCE_STORE: Nonce store backend (memory or redis)
        DIGEST_AUTH_REDIS_URL: Redis URL for the redis nonce store
        DIGEST_AUTH_REDIS_PREFIX: Key prefix for the redis nonce store
        DIGEST_AUTH_SWEEP_INTERVAL_SECONDS: Background sweep interval (0 disables it)
        DIGEST_AUTH_HOST / DIGEST_AUTH_PORT: Listen address
        DIGEST_AUTH_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
    """

    # Authentication settings
    realm: Optional[str] = None
    nonce_expire_timeout_ms: int = 3600 * 1000
    protected_paths: List[str] = field(default_factory=lambda: ["/protected"])
    verify_uri: bool = True

    # Credentials
    htdigest_file: str = ".htdigest"

    # Nonce storage
    nonce_store: str = "memory"  # "memory" or "redis"
    redis_url: str = "redis://localhost:6379/0"
    redis_prefix: str = "digest_auth"
    sweep_interval_seconds: float = 0.0

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    @classmethod
    def from_file(cls, path: str) -> "DigestAuthConfig":
        """Load configuration from a file."""
        file_path = Path(path)

        if not file_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(file_path, "r") as f:
            if file_path.suffix in [".yaml", ".yml"]:
                import yaml

                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DigestAuthConfig":
        """Create configuration from a dictionary."""
        if not isinstance(data, dict):
            raise TypeError(f"Expected dict, got {type(data).__name__}")

        config = cls()

        # Field name -> expected type(s) for validation
        _FIELD_TYPES: Dict[str, type] = {
            "realm": str,
            "nonce_expire_timeout_ms": int,
            "protected_paths": list,
            "verify_uri": bool,
            "htdigest_file": str,
            "nonce_store": str,
            "redis_url": str,
            "redis_prefix": str,
            "sweep_interval_seconds": (int, float),
            "host": str,
            "port": int,
            "log_level": str,
            "log_format": str,
        }
        _OPTIONAL_FIELDS = {"realm"}

        for field_name, expected_type in _FIELD_TYPES.items():
            if field_name in data:
                value = data[field_name]
                if value is None:
                    if field_name in _OPTIONAL_FIELDS:
                        setattr(config, field_name, None)
                        continue
                    raise TypeError(f"Config field '{field_name}' must not be null")
                # bool is a subclass of int; reject it for numeric fields
                if isinstance(value, bool) and expected_type is not bool:
                    raise TypeError(f"Config field '{field_name}' expected {expected_type}, got bool")
                if not isinstance(value, expected_type):
                    raise TypeError(
                        f"Config field '{field_name}' expected {expected_type}, "
                        f"got {type(value).__name__}"
                    )
                setattr(config, field_name, value)

        unknown = set(data) - set(_FIELD_TYPES)
        if unknown:
            logger.warning(f"Ignoring unknown config field(s): {', '.join(sorted(unknown))}")

        return config

    @classmethod
    def from_env(cls) -> "DigestAuthConfig":
        """Create configuration from environment variables."""
        config = cls()

        # Map environment variables to config fields
        env_mapping = {
            "DIGEST_AUTH_REALM": "realm",
            "DIGEST_AUTH_NONCE_EXPIRE_TIMEOUT_MS": ("nonce_expire_timeout_ms", int),
            "DIGEST_AUTH_PROTECTED_PATHS": ("protected_paths", _parse_list),
            "DIGEST_AUTH_VERIFY_URI": ("verify_uri", _parse_bool),
            "DIGEST_AUTH_HTDIGEST_FILE": "htdigest_file",
            "DIGEST_AUTH_NONCE_STORE": "nonce_store",
            "DIGEST_AUTH_REDIS_URL": "redis_url",
            "DIGEST_AUTH_REDIS_PREFIX": "redis_prefix",
            "DIGEST_AUTH_SWEEP_INTERVAL_SECONDS": ("sweep_interval_seconds", float),
            "DIGEST_AUTH_HOST": "host",
            "DIGEST_AUTH_PORT": ("port", int),
            "DIGEST_AUTH_LOG_LEVEL": "log_level",
        }

        config._env_fields = set()
        for env_var, field_info in env_mapping.items():
            value = os.environ.get(env_var)
            if value:
                if isinstance(field_info, tuple):
                    field_name, converter = field_info
                    try:
                        setattr(config, field_name, converter(value))
                    except ValueError:
                        raise ValueError(f"Invalid value for {env_var}: {value!r}")
                else:
                    field_name = field_info
                    setattr(config, field_name, value)
                config._env_fields.add(field_name)

        return config

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "DigestAuthConfig":
        """
        Load configuration with proper precedence.

        1. Start with defaults
        2. Override with file config (if provided)
        3. Override with environment variables
        """
        load_dotenv()

        config = cls()

        if config_path:
            config = cls.from_file(config_path)

        env_config = cls.from_env()

        # Merge environment overrides (only fields actually set via env vars)
        for field_name in getattr(env_config, "_env_fields", set()):
            setattr(config, field_name, getattr(env_config, field_name))

        return config

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.realm is not None and not self.realm.strip():
            errors.append("realm must not be empty")

        if self.nonce_store not in NONCE_STORE_BACKENDS:
            errors.append(f"nonce_store must be 'memory' or 'redis', got '{self.nonce_store}'")

        if self.nonce_store == "redis" and not self.redis_url:
            errors.append("redis_url is required for the redis nonce store")

        if not self.protected_paths:
            errors.append("protected_paths must contain at least one path prefix")
        for path in self.protected_paths:
            if not isinstance(path, str) or not path.startswith("/"):
                errors.append(f"protected path must start with '/', got {path!r}")

        if self.sweep_interval_seconds < 0:
            errors.append("sweep_interval_seconds must not be negative")

        if not 0 < self.port < 65536:
            errors.append(f"port must be between 1 and 65535, got {self.port}")

        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"log_level must be DEBUG, INFO, WARNING, ERROR or CRITICAL, got '{self.log_level}'")

        return errors
