import hashlib
import hmac
from typing import Optional

SIGNATURE_PREFIX = "sha256="


def compute_signature(payload_body: bytes, secret_token: str) -> str:
    """``X-Hub-Signature-256`` value GitHub sends for ``payload_body``."""
    digest = hmac.new(secret_token.encode("utf-8"), msg=payload_body, digestmod=hashlib.sha256)
    return SIGNATURE_PREFIX + digest.hexdigest()


def verify_signature(
    payload_body: bytes, secret_token: Optional[str], signature_header: Optional[str]
) -> bool:
    """
    Verify that the payload was sent from GitHub by validating the SHA256 signature.

    Without a configured secret there is nothing to verify and every payload
    is accepted.

    Args:
        payload_body: raw request body bytes
        secret_token: the webhook secret
        signature_header: the X-Hub-Signature-256 header value

    Returns:
        True if the signature is valid (or not checked), False otherwise.
    """
    if not secret_token:
        return True

    if not signature_header:
        return False

    return hmac.compare_digest(compute_signature(payload_body, secret_token), signature_header)
