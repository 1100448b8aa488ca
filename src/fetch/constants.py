"""Constants for fetching remote IIIF documents."""

HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_TOO_MANY_REQUESTS = 429
HTTP_STATUS_SERVER_ERROR_MIN = 500
HTTP_STATUS_SERVER_ERROR_MAX = 600

# Presentation 3 first, then 2, then any JSON
IIIF_ACCEPT_HEADER = (
    'application/ld+json;profile="http://iiif.io/api/presentation/3/context.json",'
    'application/ld+json;profile="http://iiif.io/api/presentation/2/context.json";'
    "q=0.9,application/json;q=0.8"
)

# Large collections can reach tens of MB
DEFAULT_MAX_RESPONSE_SIZE_BYTES = 64 * 1024 * 1024
DEFAULT_CHUNK_SIZE = 16384

# Upper bound on a server-requested Retry-After wait
MAX_RETRY_AFTER_SECONDS = 60

REQUESTS_PARTITION = "_requests"
