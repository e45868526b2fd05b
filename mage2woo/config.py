"""Runtime settings for the migration engine."""

import json
import os
from dataclasses import dataclass, fields
from typing import Any, Dict, List, Optional

ENV_PREFIX = "MAGE2WOO_"

SECRET_FIELDS = ("connector_api_key", "wc_consumer_key", "wc_consumer_secret")

TARGET_WOOCOMMERCE = "woocommerce"
TARGET_STAGING = "staging"


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Configuration for connector access, the target store and run policy."""

    # Magento connector
    connector_url: str = ""
    connector_api_key: Optional[str] = None
    key_in_query: bool = False

    # WooCommerce target
    target: str = TARGET_WOOCOMMERCE
    wc_url: str = ""
    wc_consumer_key: Optional[str] = None
    wc_consumer_secret: Optional[str] = None
    verify_ssl: bool = True

    # Job store
    database_url: str = "sqlite:///mage2woo.db"

    # Pagination policy
    batch_size: int = 20
    max_empty_pages: int = 3
    max_pages: int = 1000

    # HTTP
    request_timeout: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 1.0

    # Reporting
    log_retention_days: int = 30
    recent_errors_limit: int = 10

    def to_dict(self, redact: bool = True) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        data = {f.name: getattr(self, f.name) for f in fields(self)}
        if redact:
            for name in SECRET_FIELDS:
                if data.get(name):
                    data[name] = "***"
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Settings":
        """Create from dictionary representation, ignoring unknown keys."""
        known = {f.name: f for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            default = known[key].default
            if isinstance(default, bool):
                value = _to_bool(value)
            elif isinstance(default, int):
                value = int(value)
            elif isinstance(default, float):
                value = float(value)
            kwargs[key] = value
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """Create from MAGE2WOO_* environment variables."""
        environ = os.environ if environ is None else environ
        data = {}
        for f in fields(cls):
            value = environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if value is not None:
                data[f.name] = value
        return cls.from_dict(data)

    @classmethod
    def from_json_file(cls, path: str) -> "Settings":
        """Load settings from a JSON file; environment variables take precedence."""
        with open(path) as f:
            data = json.load(f)
        env = cls.from_env().to_dict(redact=False)
        defaults = cls().to_dict(redact=False)
        data.update({k: v for k, v in env.items() if v != defaults[k]})
        return cls.from_dict(data)

    def validate(self) -> List[str]:
        """
        Validate the settings needed to start a migration.

        Returns:
            List of validation error messages
        """
        errors = []

        if not self.connector_url:
            errors.append("Connector URL is required")
        if not self.connector_api_key:
            errors.append("Connector API key is required")

        if self.target == TARGET_WOOCOMMERCE:
            if not self.wc_url:
                errors.append("WooCommerce URL is required")
            if not self.wc_consumer_key or not self.wc_consumer_secret:
                errors.append("WooCommerce consumer key and secret are required")
        elif self.target != TARGET_STAGING:
            errors.append(f"Unknown target: {self.target}")

        if self.batch_size < 1:
            errors.append("Batch size must be at least 1")
        if self.max_empty_pages < 1:
            errors.append("Max empty pages must be at least 1")
        if self.max_pages < 1:
            errors.append("Max pages must be at least 1")

        return errors
