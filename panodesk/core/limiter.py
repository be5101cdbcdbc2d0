from slowapi import Limiter

from panodesk.core import config
from panodesk.features.users.dependencies import get_rate_limit_key


limiter = Limiter(key_func=get_rate_limit_key, enabled=config.RATE_LIMIT_ENABLED)
