"""Pydantic models describing route declarations."""
