from . import (
    admin,
    experiences,
    health,
    settings,
)

__all__ = [
    "admin",
    "experiences",
    "health",
    "settings",
]
