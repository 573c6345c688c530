"""Engine error types."""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid run configuration or input data, raised before any sampling starts."""

    def __init__(self, parameter: str, message: str) -> None:
        self.parameter = parameter
        super().__init__(f"{parameter}: {message}")
