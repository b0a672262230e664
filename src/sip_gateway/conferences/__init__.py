"""Conference endpoints."""
