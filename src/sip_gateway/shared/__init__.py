"""
Shared infrastructure: logging, errors, persistence.
"""
