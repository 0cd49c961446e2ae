"""
Signature checks and event mapping for email/SMS provider webhooks.
"""
import base64
import hashlib
import hmac
import logging
from typing import Mapping, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import load_der_public_key

logger = logging.getLogger(__name__)

SENDGRID_SIGNATURE_HEADER = "X-Twilio-Email-Event-Webhook-Signature"
SENDGRID_TIMESTAMP_HEADER = "X-Twilio-Email-Event-Webhook-Timestamp"
TWILIO_SIGNATURE_HEADER = "X-Twilio-Signature"

SENDGRID_EVENT_STATUS = {
    "delivered": "Delivered",
    "bounce": "Bounced",
    "dropped": "Failed",
    "deferred": "Deferred",
    "open": "Opened",
    "click": "Clicked",
    "spamreport": "SpamReport",
    "unsubscribe": "Unsubscribed",
    "group_unsubscribe": "GroupUnsubscribed",
}

TWILIO_STATUS = {
    "queued": "Queued",
    "sent": "Sent",
    "delivered": "Delivered",
    "undelivered": "Failed",
    "failed": "Failed",
    "received": "Delivered",
}

EMPTY_TWIML = '<?xml version="1.0" encoding="UTF-8"?><Response></Response>'


def verify_sendgrid_signature(public_key: str, signature: Optional[str], timestamp: Optional[str],
                              body: bytes) -> bool:
    """
    SendGrid signs timestamp + raw body with ECDSA (P-256, SHA-256).
    public_key is the base64 DER key from the SendGrid console.
    """
    if not public_key or not signature or not timestamp:
        return False
    try:
        key = load_der_public_key(base64.b64decode(public_key))
        key.verify(base64.b64decode(signature), timestamp.encode() + body, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    except (ValueError, TypeError) as e:
        logger.warning(f"Malformed SendGrid signature or key: {e}")
        return False
    return True


def compute_twilio_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    payload = url + "".join(f"{key}{params[key]}" for key in sorted(params))
    digest = hmac.new(auth_token.encode(), payload.encode(), hashlib.sha1).digest()
    return base64.b64encode(digest).decode()


def verify_twilio_signature(auth_token: str, signature: Optional[str], url: str,
                            params: Mapping[str, str]) -> bool:
    if not auth_token or not signature:
        return False
    expected = compute_twilio_signature(auth_token, url, params)
    return hmac.compare_digest(expected, signature)


def map_sendgrid_event(event_type: str) -> str:
    return SENDGRID_EVENT_STATUS.get(event_type.lower(), event_type)


def map_twilio_status(status: str) -> str:
    return TWILIO_STATUS.get(status.lower(), status)
