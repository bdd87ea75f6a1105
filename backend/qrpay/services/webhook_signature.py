"""
Webhook Signature Service

HMAC-SHA256 signing and verification of gateway confirmation callbacks.
The signature covers the canonical JSON of the request body.
"""
import hmac
import hashlib
import json
from typing import Any, Dict, Optional

from ..config import settings
from ..exceptions import WebhookSignatureError


def create_canonical_json(data: Dict[str, Any]) -> str:
    """
    Create canonical JSON representation for signing.

    Ensures consistent serialization:
    - Sorted keys
    - No whitespace
    """
    return json.dumps(data, sort_keys=True, separators=(',', ':'), default=str)


def sign_payload(data: Dict[str, Any], secret_key: str) -> str:
    """Hex HMAC-SHA256 of the canonical JSON of data."""
    return hmac.new(
        secret_key.encode('utf-8'),
        create_canonical_json(data).encode('utf-8'),
        hashlib.sha256
    ).hexdigest()


def verify_payload_signature(data: Dict[str, Any], signature: str, secret_key: str) -> bool:
    """Constant-time comparison against the expected signature."""
    return hmac.compare_digest(sign_payload(data, secret_key), signature)


def require_gateway_signature(data: Dict[str, Any], signature: Optional[str]) -> None:
    """
    Enforce the gateway signature when a webhook secret is configured.

    Raises:
        WebhookSignatureError: Secret configured and signature missing or wrong
    """
    secret = settings.gateway_webhook_secret
    if not secret:
        return
    if not signature:
        raise WebhookSignatureError("Missing X-Gateway-Signature header")
    if not verify_payload_signature(data, signature.lower(), secret):
        raise WebhookSignatureError("Invalid gateway signature")
