"""
StoreKit v2 signed payload decoding.

The App Store Server API returns transactions as JWS strings. The payload
is read without re-verifying Apple's certificate chain: the data was fetched
directly from Apple over HTTPS.
"""

from typing import Any

import jwt

from iap_verify.exceptions import UpstreamParseError

AUTHORITY = "App Store Server API"


def decode_signed_payload(signed_data: str) -> dict[str, Any]:
    """
    Decode a JWS compact string into its claims.

    Raises:
        UpstreamParseError: If the string is not a well-formed JWS
    """
    try:
        claims: dict[str, Any] = jwt.decode(
            signed_data,
            options={"verify_signature": False},
        )
    except jwt.exceptions.DecodeError as exc:
        raise UpstreamParseError(AUTHORITY, f"Invalid JWS data: {exc}") from exc

    return claims
