"""Dashboard composites over the backend."""
