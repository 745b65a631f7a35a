"""Core package for the issue model and shared cross-cutting functionality.

- **issues**: Issue model and the issue registry with the built-in codes
- **mime**: Media type descriptors for Content-Type and Accept headers
- **config**: Centralized configuration management with environment support
- **context**: Correlation ID management
- **exceptions**: Exception hierarchy for declaration and dispatch defects
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Structured logging with Loguru
- **observability**: Distributed tracing with OpenTelemetry
- **types**: Type aliases for the route declaration surface
"""
