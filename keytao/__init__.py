"""KeyTao dictionary collaboration backend."""

__version__ = "0.3.0"
