"""slowapi limiter shared by the routers and registered on the app in main.py."""

import hashlib

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from leavedesk.config import settings


def client_key(request: Request) -> str:
    """Bucket by bearer token when one is sent, else by client address.

    Staff behind one campus NAT share an IP but not a token.
    """
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return "tok:" + hashlib.sha256(auth[7:].encode()).hexdigest()[:32]
    return get_remote_address(request)


# Moving window, so a burst across a minute boundary is still limited
limiter = Limiter(
    key_func=client_key,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    strategy="moving-window",
)
