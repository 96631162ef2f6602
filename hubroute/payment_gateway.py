"""
Flutterwave v3 client — the payment gateway collaborator.

initialize_transaction → hosted checkout link for a reference (tx_ref)
verify_transaction     → gateway's own view of a transaction, looked up by
                         its internal id or by our reference

The verify response is the only thing the reconciler trusts; client redirects
and webhook bodies are just hints to go and ask.
"""

import hmac
import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from datetime import datetime
from typing import Optional

from .config import settings
from .errors import InvalidInputError, PaymentGatewayError
from .schemas import PaymentEvent

logger = logging.getLogger("hubroute.payments.gateway")


class FlutterwaveGateway:

    TIMEOUT_SECONDS = 30

    def __init__(self, secret_key: Optional[str] = None, base_url: Optional[str] = None,
                 webhook_hash: Optional[str] = None):
        self.secret_key = secret_key if secret_key is not None else settings.FLUTTERWAVE_SECRET_KEY
        self.base_url = (base_url or settings.FLUTTERWAVE_BASE_URL).rstrip("/")
        self.webhook_hash = (
            webhook_hash if webhook_hash is not None else settings.FLUTTERWAVE_WEBHOOK_HASH
        )

    def initialize_transaction(self, amount: float, currency: str, reference: str,
                               customer: dict, meta: Optional[dict] = None) -> str:
        """Create a hosted-checkout payment. Returns the redirect link."""
        payload = {
            "tx_ref": reference,
            "amount": amount,
            "currency": currency,
            "redirect_url": settings.PAYMENT_REDIRECT_URL,
            "meta": meta or {},
            "customer": {
                "email": customer.get("email"),
                "phonenumber": customer.get("phone") or "",
                "name": customer.get("name"),
            },
            "customizations": {
                "title": "Manufacturing order",
                "description": "Manufacturing service payment",
            },
        }
        body = self._request("POST", "/payments", payload)
        link = (body.get("data") or {}).get("link")
        if body.get("status") != "success" or not link:
            raise PaymentGatewayError(
                "Payment initialization failed",
                {"reference": reference, "message": body.get("message")},
            )
        return link

    def verify_transaction(self, transaction_id: Optional[str] = None,
                           reference: Optional[str] = None) -> PaymentEvent:
        """Ask the gateway what happened. Either key resolves to the same tx_ref."""
        if transaction_id:
            path = f"/transactions/{urllib.parse.quote(str(transaction_id))}/verify"
        elif reference:
            path = "/transactions/verify_by_reference?" + urllib.parse.urlencode({"tx_ref": reference})
        else:
            raise InvalidInputError("Missing transaction_id or tx_ref")

        body = self._request("GET", path)
        if body.get("status") != "success" or not body.get("data"):
            raise PaymentGatewayError(
                "Payment verification failed",
                {"transaction_id": transaction_id, "reference": reference,
                 "message": body.get("message")},
            )
        return self.event_from_payload(body["data"])

    def verify_webhook_signature(self, header_value: Optional[str]) -> bool:
        """Flutterwave echoes the dashboard secret hash in the verif-hash header."""
        if not self.webhook_hash or not header_value:
            return False
        return hmac.compare_digest(self.webhook_hash, header_value)

    @staticmethod
    def event_from_payload(data: dict) -> PaymentEvent:
        status = str(data.get("status", "")).lower()
        if status not in ("successful", "failed", "pending"):
            # cancelled / abandoned checkouts count as failed attempts
            status = "failed"
        created = data.get("created_at")
        return PaymentEvent(
            reference=data["tx_ref"],
            transaction_id=str(data["id"]) if data.get("id") is not None else None,
            status=status,
            amount=float(data.get("amount") or 0),
            currency=data.get("currency") or settings.CURRENCY,
            gateway_timestamp=_parse_timestamp(created),
        )

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        if not self.secret_key:
            raise PaymentGatewayError("Flutterwave keys not configured")

        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        req = urllib.request.Request(
            self.base_url + path,
            data=data,
            headers={
                "Authorization": f"Bearer {self.secret_key}",
                "Content-Type": "application/json",
            },
            method=method,
        )
        try:
            with urllib.request.urlopen(req, timeout=self.TIMEOUT_SECONDS) as response:
                return json.loads(response.read())
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace")
            logger.error("Flutterwave %s %s returned %s: %s", method, path, e.code, detail)
            raise PaymentGatewayError(
                f"Payment gateway returned HTTP {e.code}", {"path": path, "body": detail[:500]}
            ) from e
        except (urllib.error.URLError, TimeoutError, ValueError) as e:
            logger.error("Flutterwave %s %s failed: %s", method, path, e)
            raise PaymentGatewayError("Payment gateway unreachable", {"path": path}) from e


def _parse_timestamp(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
