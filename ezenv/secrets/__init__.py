"""Remote secrets access."""

from ezenv.secrets.client import SecretsClient

__all__ = ["SecretsClient"]
