"""Type aliases for the route declaration surface.

Route schemas are declarative, so the shapes flowing through the pipeline
can only be described loosely. The aliases here give those shapes a name.
"""

from collections.abc import Mapping
from typing import Any

# A field schema: ``True`` (any string), a type annotation, or a TypeAdapter
type FieldSchema = Any

# A body schema: a type annotation, a TypeAdapter, or a mapping of field
# names to annotations (``(annotation, default)`` tuples allowed)
type ContentSchema = Any

# Per-field schema maps for params, query and headers
type FieldSchemaMap = Mapping[str, FieldSchema]
