import logging
import os

logger = logging.getLogger(__name__)


def _canon_prefix(val):
    """
    Normalize API prefix to always be exactly like '/api':
      - defaults to '/api' when unset/empty
      - ensures a single leading slash
      - removes any trailing slash (except for root)
    """
    val = (val or "/api").strip()
    if not val.startswith("/"):
        val = "/" + val
    if len(val) > 1 and val.endswith("/"):
        val = val[:-1]
    return val


def _parse_positive_int(env_var: str, default: int) -> int:
    raw_value = os.getenv(env_var)
    if raw_value is None or not raw_value.strip():
        return default

    try:
        value = int(raw_value)
    except ValueError:
        logger.warning(
            "%s is not a valid integer (got %r); defaulting to %d",
            env_var,
            raw_value,
            default,
        )
        return default

    if value <= 0:
        logger.warning("%s must be positive; defaulting to %d", env_var, default)
        return default

    return value


API_PREFIX = _canon_prefix(os.getenv("API_PREFIX"))

# Rating every new player starts from.
DEFAULT_RATING = _parse_positive_int("DEFAULT_RATING", 1000)

# Tournament defaults applied when a create request omits them.
DEFAULT_GAMES_PER_SET = _parse_positive_int("DEFAULT_GAMES_PER_SET", 6)
DEFAULT_NUMBER_OF_ROUNDS = _parse_positive_int("DEFAULT_NUMBER_OF_ROUNDS", 3)

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379")
