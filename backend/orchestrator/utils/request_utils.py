# /orchestrator/utils/request_utils.py

import hashlib
from fastapi import Request


def get_remote_address(request: Request) -> str:
    """
    Safely returns the client's IP address from a request object.
    """
    if request.client and request.client.host:
        return request.client.host
    return "127.0.0.1"


def get_rate_limit_key(request: Request) -> str:
    """
    Console clients share NAT addresses, so callers presenting an API key are
    limited per key (hashed, never stored in clear) and everyone else per IP.
    """
    api_key = request.headers.get("X-API-KEY")
    if api_key:
        return "key:" + hashlib.sha256(api_key.encode()).hexdigest()[:16]
    return get_remote_address(request)
