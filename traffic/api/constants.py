"""API-related constants."""

# HTTP Headers
CORRELATION_ID_HEADER = "X-Correlation-ID"
REQUEST_ID_HEADER = "X-Request-ID"
ACCEPT_HEADER = "accept"
CONTENT_TYPE_HEADER = "content-type"

# Request logging
MAX_USER_AGENT_LENGTH = 200
