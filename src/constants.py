"""Constants used in the project."""

import os
from enum import Enum


class ArchiveKinds(Enum):
    """Archive formats the extractor understands.

    Args:
        Enum (string): Archive kinds.
    """

    ZIP = "zip"
    TAR_GZ = "tar.gz"


class ProviderPriorities:  # pylint: disable=too-few-public-methods
    """Static resolution ranks, lower wins.

    Artifact repositories come first, the catalog doing the most remoting last.
    """

    ARTIFACT_REPOSITORY = 0
    RELEASE_API = 100
    CDN = 100
    CATALOG = 1000


_HOME = os.path.expanduser("~")


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "YEM_LOG_LEVEL"
    ENV_CONFIG = "YEM_CONFIG"
    ENV_SDKMAN_DIR = "SDKMAN_DIR"
    USER_AGENT = "yem/1.0"

    # Local layout markers
    EXPLODED_SUFFIX = "_exploded"
    DISTRIBUTION_EXPLODED = "distribution_exploded"
    TEMPORARY_SUFFIX = ".yem.tmp"
    DOWNLOADED_ARCHIVE_NAME = "distro.archive"
    MAC_HOME = os.path.join("Contents", "Home")

    # HTTP
    CONNECT_TIMEOUT_SEC = 60
    REQUEST_TIMEOUT_SEC = 900
    HTTP_CACHE_VALIDITY_SEC = 86400
    HTTP_CACHE_DIR = os.path.join(_HOME, ".yupiik", "yem", "cache", "http")
    DOWNLOAD_CHUNK_SIZE = 64 * 1024

    # Artifact repository
    CENTRAL_BASE = "https://repo.maven.apache.org/maven2/"
    CENTRAL_LOCAL = os.path.join(_HOME, ".m2", "repository")
    CENTRAL_GAVS = ["org.apache.maven:apache-maven:tar.gz:bin"]

    # Catalog
    SDKMAN_BASE = "https://api.sdkman.io/2/"
    SDKMAN_LOCAL = os.path.join(_HOME, ".sdkman", "candidates")

    # CDN / metadata API
    ZULU_BASE = "https://cdn.azul.com/zulu/bin/"
    ZULU_API_BASE = "https://api.azul.com"
    ZULU_API_PAGE_SIZE = 1000
    ZULU_LOCAL = os.path.join(_HOME, ".yupiik", "yem", "zulu")

    # Release API
    GITHUB_BASE = "https://api.github.com"
    GITHUB_LOCAL = os.path.join(_HOME, ".yupiik", "yem", "github")
    GITHUB_PER_PAGE = 100
    GITHUB_API_VERSION = "2022-11-28"

    # Decorative hints shared by catalogs
    TOOL_EMOJIS = {
        "java": "☕",
        "maven": "\U0001F989",
        "apache-maven": "\U0001F989",
        "minikube": "☸️",
    }
