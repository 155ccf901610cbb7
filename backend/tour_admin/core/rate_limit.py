from slowapi import Limiter
from slowapi.util import get_remote_address

from tour_admin.core.settings import Settings

settings = Settings()

# Shared by main.py (app.state.limiter) and the routers that decorate endpoints
limiter = Limiter(key_func=get_remote_address, enabled=settings.ENABLE_RATE_LIMITING)
