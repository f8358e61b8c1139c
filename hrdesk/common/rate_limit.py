"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance that routers import for
per-endpoint limits, wired into the FastAPI app in main.py.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

# Onboarding invitations create accounts and send mail
INVITE_RATE_LIMIT = "20/minute"
