# src/kubeusage/core/config.py

import logging
import os

from dotenv import load_dotenv

from ..utils.date_utils import parse_duration
from .exceptions import ConfigurationError

# Load environment variables from a .env file located in the project root
dotenv_path = os.path.join(os.path.dirname(__file__), "..", "..", "..", ".env")
load_dotenv(dotenv_path=dotenv_path)

logger = logging.getLogger(__name__)

SECRETS_DIR = "/etc/kubeusage/secrets"


def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).lower() in ("true", "1", "t", "y", "yes")


class Config:
    """
    Handles the application's configuration by loading values from environment variables.
    """

    # Supported backends for the usage table.
    DB_TYPES = ("sqlite", "postgres")

    def __init__(self):
        # --- Project variables ---
        self.PROJECT_ID = os.getenv("PROJECT_ID", "")

        # --- Logging variables ---
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

        # --- Export schedule ---
        self.EXPORT_INTERVAL = os.getenv("EXPORT_INTERVAL", "1h")
        self.EXPORT_CONCURRENCY = int(os.getenv("EXPORT_CONCURRENCY", "4"))
        self.GROUP_TIMEOUT_SECONDS = float(os.getenv("GROUP_TIMEOUT_SECONDS", "60"))

        # --- Cloud Monitoring query window ---
        # A datapoint every QUERY_RESOLUTION, covering QUERY_PERIOD starting QUERY_START ago.
        self.QUERY_RESOLUTION = os.getenv("QUERY_RESOLUTION", "1m")
        self.QUERY_PERIOD = os.getenv("QUERY_PERIOD", "1h")
        self.QUERY_START = os.getenv("QUERY_START", "-75m")

        # --- Node capacity cache ---
        self.NODE_CACHE_TTL = os.getenv("NODE_CACHE_TTL", "5m")
        self.NODE_CACHE_DB_PATH = os.getenv("NODE_CACHE_DB_PATH", "kubeusage_cache.db")

        # --- Usage table ---
        self.DB_TYPE = os.getenv("DB_TYPE", "sqlite").lower()
        self.DB_PATH = os.getenv("DB_PATH", "kubeusage_data.db")
        self.DB_CONNECTION_STRING = os.getenv("DB_CONNECTION_STRING")
        self.DB_SCHEMA = os.getenv("DB_SCHEMA", "public")
        self.USAGE_TABLE_NAME = os.getenv("USAGE_TABLE_NAME", "consumption")

        # --- Google APIs ---
        self.MONITORING_API_URL = os.getenv("MONITORING_API_URL", "https://monitoring.googleapis.com/v3")
        self.CONTAINER_API_URL = os.getenv("CONTAINER_API_URL", "https://container.googleapis.com/v1")
        # Read once at startup and reused by every cached cluster client. Access tokens
        # expire after about an hour; long-running deployments need a token refreshed
        # outside the process (e.g. a rotated secret file) and a restart on rotation.
        self.GOOGLE_OAUTH_TOKEN = self._get_secret("GOOGLE_OAUTH_TOKEN")
        self.VERIFY_CERTS = _env_bool("VERIFY_CERTS", "True")

        # --- HTTP client defaults ---
        self.DEFAULT_TIMEOUT_CONNECT = float(os.getenv("DEFAULT_TIMEOUT_CONNECT", "5"))
        self.DEFAULT_TIMEOUT_READ = float(os.getenv("DEFAULT_TIMEOUT_READ", "30"))
        self.USER_AGENT = os.getenv("USER_AGENT", "kubeusage")

    @staticmethod
    def _get_secret(key: str, default: str = None) -> str:
        """
        Retrieves a secret from a file (Docker secret/volume) or falls back to environment variable.

        Raises:
            PermissionError: If the secret file exists but cannot be read due to permissions.
            IOError: If the secret file exists but cannot be read due to I/O errors.
        """
        secret_file = f"{SECRETS_DIR}/{key}"
        if os.path.exists(secret_file):
            try:
                with open(secret_file, "r") as f:
                    value = f.read().strip()
                    logger.debug(f"Loaded secret '{key}' from {secret_file}")
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

    # Durations are resolved at access time so tests can tweak the raw strings.
    @property
    def export_interval_seconds(self) -> float:
        return parse_duration(self.EXPORT_INTERVAL).total_seconds()

    @property
    def resolution_seconds(self) -> float:
        return parse_duration(self.QUERY_RESOLUTION).total_seconds()

    @property
    def node_cache_ttl_seconds(self) -> float:
        return parse_duration(self.NODE_CACHE_TTL).total_seconds()

    def validate_instance(self):
        """
        Validates the configuration. Any error here is fatal at startup.
        """
        if not self.PROJECT_ID:
            raise ConfigurationError("PROJECT_ID must be set")
        if self.DB_TYPE not in self.DB_TYPES:
            raise ConfigurationError(f"DB_TYPE must be one of {', '.join(self.DB_TYPES)}")
        if self.DB_TYPE == "postgres" and not self.DB_CONNECTION_STRING:
            raise ConfigurationError("DB_CONNECTION_STRING must be set for postgres database")
        for key in ("EXPORT_INTERVAL", "QUERY_RESOLUTION", "QUERY_PERIOD", "QUERY_START", "NODE_CACHE_TTL"):
            try:
                parse_duration(getattr(self, key))
            except ValueError as e:
                raise ConfigurationError(f"{key} is invalid: {e}") from e
        if self.export_interval_seconds <= 0:
            raise ConfigurationError("EXPORT_INTERVAL must be positive")
        if self.resolution_seconds <= 0:
            raise ConfigurationError("QUERY_RESOLUTION must be positive")
        if self.EXPORT_CONCURRENCY < 1:
            raise ConfigurationError("EXPORT_CONCURRENCY must be at least 1")
        if not self.GOOGLE_OAUTH_TOKEN:
            logger.warning("GOOGLE_OAUTH_TOKEN is not set; Google API calls will be unauthenticated.")


# Instantiate the config to be imported by other modules
config = Config()
