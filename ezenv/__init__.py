"""ezenv - environment secrets from your terminal."""

__version__ = "0.1.0"
__logo__ = "🔐"
