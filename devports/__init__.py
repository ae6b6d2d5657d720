"""devports - find, identify and free TCP ports held by development processes."""

__version__ = "0.1.0"
