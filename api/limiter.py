"""
api/limiter.py -- The one slowapi Limiter the whole app counts against.

api/main.py mounts it (SlowAPIMiddleware + app.state.limiter); the login
route decorates itself with @limiter.limit(Settings.login_rate_limit).
Counters are keyed by client IP and live in process memory, so they reset
on restart and are not shared between workers.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
