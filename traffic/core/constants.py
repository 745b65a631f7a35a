"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Content negotiation
# RFC 9110, section 8.3: a recipient MAY assume this type when Content-Type is absent
OCTET_STREAM = "application/octet-stream"
DEFAULT_CHARSET = "utf-8"
