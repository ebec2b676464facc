"""
Exceptions raised by hpcsim.

Runtime numerics are clamped rather than raised, so the only error the
engine produces on its own is a configuration error at construction time.
"""


class ConfigurationError(ValueError):
    """
    Invalid configuration value

    Args:
        field (str): Name of the offending configuration field
        message (str): Human readable description of the problem
    """

    def __init__(self, field, message):
        super(ConfigurationError, self).__init__(f"{field}: {message}")
        self.field = field
