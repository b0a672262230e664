"""Call control endpoints."""
