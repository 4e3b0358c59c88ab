"""Static Maps endpoint and URL signing.

Keys restricted to signed requests need a `signature` parameter computed
over the path and query of the final URL.

References:
- Static Maps: https://developers.google.com/maps/documentation/maps-static/start
- Signing: https://developers.google.com/maps/documentation/maps-static/digital-signature
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from urllib.parse import urlsplit

STATIC_MAP_ENDPOINT = "https://maps.googleapis.com/maps/api/staticmap"


def url_signature(url: str, secret: str) -> str:
    """Return the URL-safe base64 HMAC-SHA1 signature of `url`'s path + query.

    `secret` is the URL-safe base64 signing secret from the Cloud console.
    """
    parts = urlsplit(url)
    resource = parts.path + ("?" + parts.query if parts.query else "")
    try:
        key = base64.urlsafe_b64decode(secret.encode("ascii"))
    except ValueError as e:
        raise ValueError("URL signing secret is not valid URL-safe base64.") from e
    digest = hmac.new(key, resource.encode("utf-8"), hashlib.sha1).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii")


def sign_url(url: str, secret: str) -> str:
    """Append `signature=` to `url`. The signature must be the last parameter."""
    sep = "&" if urlsplit(url).query else "?"
    return f"{url}{sep}signature={url_signature(url, secret)}"
