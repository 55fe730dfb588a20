"""podforge: the guided podcast creation pipeline."""

__version__ = "0.1.0"
