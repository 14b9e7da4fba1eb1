"""Service record audit and lifecycle back end for an automotive service center."""

__version__ = "1.0.0"
