from flask import request


def client_ip() -> str:
    # socket peer only; behind a proxy, ProxyFix (PROXY_FIX_X_FOR) rewrites
    # remote_addr from the hops the proxy appended
    return request.remote_addr or "unknown"


def user_agent() -> str:
    return (request.headers.get("User-Agent") or "")[:255]
