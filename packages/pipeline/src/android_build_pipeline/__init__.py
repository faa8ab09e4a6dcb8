"""Storage-upload driven Android build pipeline."""

__version__ = "0.1.0"
