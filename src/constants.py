"""Constants used in the project."""

import os
from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    RESOLVE_FAILED = 3
    INPUT_ERROR = 4
    CACHE_ERROR = 5


class DownloadStatus(Enum):
    """Outcome of a single artifact download.

    NO means nothing was fetched because the file was already present.
    """

    SUCCESSFUL = "successful"
    FAILED = "failed"
    NO = "no"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    LOG_FORMAT = "[%(levelname)s] %(message)s"
    ENV_LOG_LEVEL = "DEPRESOLVE_LOG_LEVEL"
    ENV_CACHE_DIR = "DEPRESOLVE_CACHE_DIR"

    DEFAULT_CACHE_DIR = os.path.join(os.path.expanduser("~"), ".depresolve", "cache")
    CACHE_ARTIFACT_PATTERN = "[organisation]/[module]/([branch]/)[type]s/[artifact]-[revision].[ext]"
    CACHE_UNPACKED_SUFFIX = "-unpacked"

    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    DOWNLOAD_MAX_WORKERS = 4
    DOWNLOAD_CHUNK_SIZE = 64 * 1024
    USER_AGENT = "depresolve/1.0"

    MAVEN_CENTRAL_ROOT = "https://repo1.maven.org/maven2/"
    M2_ARTIFACT_PATTERN = "[organisation]/[module]/[revision]/[artifact]-[revision](-[classifier]).[ext]"
    M2_METADATA_FILE = "maven-metadata.xml"

    BINTRAY_JCENTER_ROOT = "https://jcenter.bintray.com/"
    BINTRAY_JCENTER_NAME = "bintray/jcenter"
    BINTRAY_DL_ROOT = "https://dl.bintray.com/"

    DEFAULT_CONF = "default"
    DEFAULT_CONF_MAPPING = "*->*"
    DEFAULT_STATUS = "integration"
    STATUSES = ["integration", "milestone", "release"]

    CONFLICT_MANAGERS = ["latest-time", "latest-revision", "all", "strict"]
    DEFAULT_CONFLICT_MANAGER = "latest-time"
    CIRCULAR_STRATEGIES = ["warn", "ignore", "error"]
    DEFAULT_CIRCULAR_STRATEGY = "warn"

    PUBLICATION_FORMAT = "%Y%m%d%H%M%S"
    REPORT_ENCODING = "UTF-8"
