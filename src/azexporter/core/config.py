# src/azexporter/core/config.py

import logging
import os
import re
from typing import List

from dotenv import load_dotenv

# Load environment variables from a .env file located in the project root
dotenv_path = os.path.join(os.path.dirname(__file__), "..", "..", "..", ".env")
load_dotenv(dotenv_path=dotenv_path)

_INTERVAL_RE = re.compile(r"^(\d+)([smh])$")
_INTERVAL_MULTIPLIERS = {"s": 1, "m": 60, "h": 3600}


def parse_interval(interval_str: str) -> int:
    """
    Converts a Prometheus-style duration string like '30s', '5m' or '1h' to seconds.
    """
    match = _INTERVAL_RE.match((interval_str or "").strip().lower())
    if not match:
        raise ValueError(f"Invalid interval format: '{interval_str}'. Use 's', 'm', or 'h'.")
    value, unit = int(match.group(1)), match.group(2)
    return value * _INTERVAL_MULTIPLIERS[unit]


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in (value or "").split(",") if item.strip()]


def _as_bool(value: str) -> bool:
    return (value or "").lower() in ("true", "1", "t", "y", "yes")


class Config:
    """
    Handles the exporter's configuration by loading values from environment variables.
    """

    def __init__(self):
        # --- Azure credentials ---
        self.AZURE_TENANT_ID = self._get_secret("AZURE_TENANT_ID")
        self.AZURE_CLIENT_ID = self._get_secret("AZURE_CLIENT_ID")
        self.AZURE_CLIENT_SECRET = self._get_secret("AZURE_CLIENT_SECRET")

    @staticmethod
    def _get_secret(key: str, default: str = None) -> str:
        """
        Retrieves a secret from a file (Docker secret/volume) or falls back to environment variable.

        Raises:
            PermissionError: If the secret file exists but cannot be read due to permissions.
            IOError: If the secret file exists but cannot be read due to I/O errors.
        """
        secret_file = f"/etc/azexporter/secrets/{key}"
        if os.path.exists(secret_file):
            try:
                with open(secret_file, "r") as f:
                    value = f.read().strip()
                    logging.getLogger(__name__).debug(f"Loaded secret '{key}' from {secret_file}")
                    return value
            except PermissionError as e:
                raise PermissionError(
                    f"Secret file '{secret_file}' exists but cannot be read due to permission denied. "
                    f"Please check file permissions or run with appropriate privileges."
                ) from e
            except (IOError, OSError) as e:
                raise IOError(
                    f"Secret file '{secret_file}' exists but cannot be read: {e}. "
                    f"Please check the file integrity and system resources."
                ) from e
        return os.getenv(key, default)

    # --- Azure endpoints ---
    AZURE_AUTHORITY_HOST = os.getenv("AZURE_AUTHORITY_HOST", "https://login.microsoftonline.com")
    AZURE_MANAGEMENT_URL = os.getenv("AZURE_MANAGEMENT_URL", "https://management.azure.com")
    AZURE_GRAPH_URL = os.getenv("AZURE_GRAPH_URL", "https://graph.microsoft.com")

    # Scope selection and label enrichment are resolved at access time so
    # tests can change the environment after import.
    @property
    def AZURE_SUBSCRIPTIONS(self) -> List[str]:
        return _split_list(os.getenv("AZURE_SUBSCRIPTIONS", ""))

    @property
    def AZURE_RESOURCE_TAGS(self) -> List[str]:
        return _split_list(os.getenv("AZURE_RESOURCE_TAGS", "owner"))

    @property
    def AZURE_RESOURCEGROUP_TAGS(self) -> List[str]:
        return _split_list(os.getenv("AZURE_RESOURCEGROUP_TAGS", "owner"))

    @property
    def COLLECTORS(self) -> List[str]:
        return _split_list(os.getenv("COLLECTORS", "resources,iam,database,graph_apps"))

    GRAPH_APPLICATION_FILTER = os.getenv("GRAPH_APPLICATION_FILTER", "")

    # --- Pipeline variables ---
    SCRAPE_INTERVAL = os.getenv("SCRAPE_INTERVAL", "5m")
    SCOPE_CONCURRENCY = int(os.getenv("SCOPE_CONCURRENCY", "5"))
    SCOPE_FAILURE_POLICY = os.getenv("SCOPE_FAILURE_POLICY", "fail_fast").lower()
    TICK_FAILURE_POLICY = os.getenv("TICK_FAILURE_POLICY", "skip").lower()
    TICK_TIMEOUT = os.getenv("TICK_TIMEOUT", "")

    # --- HTTP client variables ---
    PROVIDER_MAX_RETRIES = int(os.getenv("PROVIDER_MAX_RETRIES", "0"))
    PROVIDER_RETRY_BACKOFF = float(os.getenv("PROVIDER_RETRY_BACKOFF", "1.0"))
    DEFAULT_TIMEOUT_CONNECT = float(os.getenv("DEFAULT_TIMEOUT_CONNECT", "5"))
    DEFAULT_TIMEOUT_READ = float(os.getenv("DEFAULT_TIMEOUT_READ", "30"))
    USER_AGENT = os.getenv("USER_AGENT", "azexporter/0.1.0")

    # --- Logging variables ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # --- Exposition variables ---
    SERVER_BIND = os.getenv("SERVER_BIND", "0.0.0.0")
    SERVER_PORT = int(os.getenv("SERVER_PORT", "8080"))

    # --- Telemetry variables ---
    OTEL_ENABLED = _as_bool(os.getenv("OTEL_ENABLED", "false"))

    @property
    def TICK_TIMEOUT_SECONDS(self):
        if not self.TICK_TIMEOUT:
            return None
        return parse_interval(self.TICK_TIMEOUT)

    def validate_instance(self):
        parse_interval(self.SCRAPE_INTERVAL)
        if self.TICK_TIMEOUT:
            parse_interval(self.TICK_TIMEOUT)
        if self.SCOPE_CONCURRENCY < 1:
            raise ValueError("SCOPE_CONCURRENCY must be at least 1.")
        if self.SCOPE_FAILURE_POLICY not in ("fail_fast", "isolate"):
            raise ValueError("SCOPE_FAILURE_POLICY must be 'fail_fast' or 'isolate'.")
        if self.TICK_FAILURE_POLICY not in ("skip", "exit"):
            raise ValueError("TICK_FAILURE_POLICY must be 'skip' or 'exit'.")
        if self.PROVIDER_MAX_RETRIES < 0:
            raise ValueError("PROVIDER_MAX_RETRIES must not be negative.")
        if not self.AZURE_TENANT_ID:
            logging.warning("AZURE_TENANT_ID is not set.")


# Instantiate the config to be imported by other modules
config = Config()
config.validate_instance()
