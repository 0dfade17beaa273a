"""csinet: IP address management and network topology generation."""

__version__ = "0.1.0"
