from slowapi import Limiter
from slowapi.util import get_remote_address


def get_rate_limit_key(request):
    """Per client IP. Search is anonymous, so no client-supplied id is trusted for bucketing."""
    return get_remote_address(request)


limiter = Limiter(key_func=get_rate_limit_key)
