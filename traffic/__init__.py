"""Traffic - declarative request validation and content negotiation.

Traffic sits between a raw HTTP request and an application handler. Each
route declares what it accepts (path params, query, headers, body media
types and schema), what it may answer (status and media type pairs with
their schemas) and which issues it may raise. Requests that break the
declaration never reach the handler; they are answered with a structured
issue payload instead.

Architecture Overview:
- **Core Layer**: issues, media types, configuration, logging, tracing
- **API Layer**: route compilation, validation pipeline, response dispatch,
  and the FastAPI application factory
"""

from traffic.api.codec import ContentCodec
from traffic.api.context import Content, RequestContext
from traffic.api.schemas.routes import (
    RequestDefinition,
    ResponseDefinition,
    RouteDefinition,
)
from traffic.api.traffic import Traffic, TrafficRoute
from traffic.core.exceptions import IssueRaised, TrafficError
from traffic.core.issues import Issue, Issues
from traffic.core.mime import MediaType

__all__ = [
    "Content",
    "ContentCodec",
    "Issue",
    "IssueRaised",
    "Issues",
    "MediaType",
    "RequestContext",
    "RequestDefinition",
    "ResponseDefinition",
    "RouteDefinition",
    "Traffic",
    "TrafficError",
    "TrafficRoute",
]
