"""
Exception types for configuration loading.
"""


class ConfigurationError(Exception):
    """Raised when a configuration file is missing, malformed, or inconsistent."""

    pass
