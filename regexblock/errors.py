class RegexBlockError(Exception):
    """Base error for the regexblock middleware."""


class ConfigError(RegexBlockError, ValueError):
    """Configuration could not be read or has the wrong shape."""


class NoValidPatterns(RegexBlockError):
    """None of the configured regex patterns compiled."""

    def __init__(self, message: str = "No valid regex patterns found."):
        super().__init__(message)
