"""Rate limiting configuration using slowapi.

Provides a module-level Limiter instance that routers import for
per-endpoint limits, and that main.py wires into the FastAPI app.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

# Limits apply per route via @limiter.limit("N/period").
limiter = Limiter(key_func=get_remote_address)
