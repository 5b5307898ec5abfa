from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import settings

# Rate limiting
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
