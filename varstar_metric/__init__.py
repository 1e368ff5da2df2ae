"""Top-level package for variable-star metric learning."""

__all__ = [
    "bounds",
    "cli",
    "config",
    "constraints",
    "distance",
    "errors",
    "evaluate",
    "io",
    "itml",
    "projection",
    "utils",
]
