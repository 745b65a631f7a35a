"""API utilities: orjson-backed JSON responses."""
