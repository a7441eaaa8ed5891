"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONFIG_ERROR = 2


class LockKeys(Enum):
    """Independent single-flight keys held per package."""

    METADATA = "metadata"
    TARBALL = "tarball"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    PROGRAM_NAME = "npm-serve"
    VERSION = "1.0.0"

    REGISTRY_URL_NPM = "https://registry.npmjs.org"
    DEFAULT_HOST = "127.0.0.1"
    DEFAULT_PORT = 2998
    DEFAULT_PREFIX = "/package/"
    DEFAULT_STORAGE = "./packages"
    DEFAULT_MAX_AGE = 30  # Cache-Control max-age sent to clients, in seconds
    DEFAULT_UPDATE_INTERVAL = 1  # Memory cache TTL before a background refresh, in seconds
    REQUEST_TIMEOUT = 30  # Timeout in seconds for upstream HTTP requests
    DOWNLOAD_WAIT_TIMEOUT = 60  # Seconds a request waits on another request's download

    HEALTH_PATH = "/_npmserve/health"
    ARCHIVE_ROOT = "package"
    CHUNK_SIZE = 64 * 1024
    USER_AGENT = "npm-serve/1.0"

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    ENV_LOG_LEVEL = "NPMSERVE_LOG_LEVEL"
    LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
