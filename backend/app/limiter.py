"""Rate limiter shared by all routers; keyed by client address.

Limits: auth 20/minute, listings and project management 60/minute,
file transfer 600/minute. /health is exempt.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
