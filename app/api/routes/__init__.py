from . import clickup

__all__ = [
    "clickup",
]
