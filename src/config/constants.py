"""Constants for the configuration module."""

# Log component names
COMPONENT_CONFIG = "config"
COMPONENT_CLI = "cli"

# Supported URL schemes
VALID_URL_SCHEMES = ("http://", "https://")

# Store type identifiers
STORE_TYPE_REMOTE = "iiif-remote"
STORE_TYPE_LOCAL = "iiif-json"

# Accepted spellings for store types in configuration files
STORE_TYPE_ALIASES = {
    "remote": STORE_TYPE_REMOTE,
    "iiif-remote": STORE_TYPE_REMOTE,
    "local": STORE_TYPE_LOCAL,
    "local-disk": STORE_TYPE_LOCAL,
    "iiif-json": STORE_TYPE_LOCAL,
}

# Name of the store synthesized from shorthand URL lists
SHORTHAND_STORE_ID = "content"

# Configuration files searched in order, relative to the project root
SUPPORTED_CONFIG_FILES = (
    ".iiifrc.yml",
    ".iiifrc.yaml",
    "iiif-config/config.yml",
    "iiif-config/config.yaml",
)

# Built-in default store used when nothing else is configured
DEFAULT_STORE_ID = "default"
DEFAULT_STORE_PATH = "content"
DEFAULT_STORE_PATTERN = "**/*.json"

DEFAULT_SERVER_URL = "http://localhost:7111"

# Default ordered run list of pipeline steps
DEFAULT_EXTRACTIONS = (
    "extract-label-string",
    "extract-thumbnail",
    "extract-topics",
    "extract-image-services",
    "extract-collection-items",
    "extract-folder-collections",
)
DEFAULT_ENRICHMENTS = (
    "enrich-part-of-collections",
    "enrich-topic-classification",
    "extract-collection-thumbnail",
    "enrich-topic-thumbnails",
    "enrich-related-items",
    "enrich-search-record",
)
DEFAULT_RUN = DEFAULT_EXTRACTIONS + DEFAULT_ENRICHMENTS

SHORTHAND_OPTIONS_ERROR = (
    "The `save` and `folder` options can only be used together with a "
    "`manifests` or `collections` URL list"
)
SHORTHAND_CONFLICT_ERROR = (
    "Shorthand `manifests`/`collections` lists cannot be combined with `stores`"
)
