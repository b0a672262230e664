"""
AEIMS backend facade.

Keep package import side-effects to a minimum; import client/factory
modules directly.
"""

__all__ = [
    "client",
    "commands",
    "config",
    "credentials",
    "factory",
    "retry",
]
