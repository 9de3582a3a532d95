"""Authorization service constants."""

DEVICE_CODE_PATH = "/functions/v1/cli-auth/device"
DEVICE_TOKEN_PATH = "/functions/v1/cli-auth/token"
REFRESH_PATH = "/functions/v1/cli-auth/refresh"
PASSWORD_GRANT_PATH = "/auth/v1/token?grant_type=password"
USER_PATH = "/auth/v1/user"

SERVICE_PREFIX = "ezenv-cli"
TOKEN_ACCOUNT = "token_data"

ENVIRONMENTS = ("development", "staging", "production")
DEFAULT_ENVIRONMENT = "production"

POLL_INTERVAL_SEC = 5.0
MAX_POLL_TIME_SEC = 600.0
EXPIRY_MARGIN_SEC = 5 * 60
DEFAULT_EXPIRES_IN_SEC = 3600
HTTP_TIMEOUT_SEC = 30.0

PASSWORD_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY_SEC = 1.0
