from .config import (
    CLOSING_HOUR,
    DEFAULT_EPSILON,
    OPENING_HOUR,
    Config,
    DomainConfig,
    IOConfig,
    PrivacyConfig,
)

__all__ = [
    "CLOSING_HOUR",
    "DEFAULT_EPSILON",
    "OPENING_HOUR",
    "Config",
    "DomainConfig",
    "IOConfig",
    "PrivacyConfig",
]
