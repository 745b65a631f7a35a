"""HTTP layer: route compilation and the request/response pipeline.

Key components:
- **schemas.routes**: Pydantic models for route definitions
- **routing**: Compiles definitions into validators and response tables
- **codec**: Body decoding and encoding by media type
- **pipeline**: Ordered request validation that short-circuits to issues
- **dispatch**: Declared response rendering and issue serialization
- **traffic**: The ``Traffic`` compiler and its runtime routes
- **middleware**: Correlation IDs, request logging, exception handlers
- **main**: FastAPI application factory
"""
