"""
eSewa ePay v2 payment gateway integration.

Flow:
1. We POST an HTML form to the gateway containing the amounts, a unique
   ``transaction_uuid`` and a signature over
   ``total_amount,transaction_uuid,product_code``.
2. The gateway redirects the customer back to our success or failure URL
   with ``?data=<base64 JSON>``; the JSON lists ``signed_field_names`` and a
   ``signature`` we recompute with the shared secret.
3. The status API can be polled with the product code, amount and uuid.

The signature is base64(HMAC-SHA256(secret, "f1=v1,f2=v2,...")).
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import uuid
from decimal import ROUND_HALF_UP, Decimal
from html import escape
from typing import Any, Dict, Optional, Union

import httpx
from carwash.config import settings
from carwash.utils.retry import RetryExhaustedError, with_retry

logger = logging.getLogger(__name__)

SIGNED_FIELD_NAMES = "total_amount,transaction_uuid,product_code"

# Status values reported by the gateway
STATUS_COMPLETE = "COMPLETE"
STATUS_PENDING = "PENDING"
STATUS_FULL_REFUND = "FULL_REFUND"
STATUS_PARTIAL_REFUND = "PARTIAL_REFUND"
STATUS_CANCELED = "CANCELED"
STATUS_NOT_FOUND = "NOT_FOUND"

Amount = Union[int, float, str, Decimal]


class PaymentGatewayError(Exception):
    """Raised for undecodable callbacks or failed gateway calls."""


def _secret(secret_key: Optional[str]) -> bytes:
    return (secret_key if secret_key is not None else settings.ESEWA_SECRET_KEY).encode("utf-8")


def _sign(message: str, secret_key: Optional[str] = None) -> str:
    digest = hmac.new(_secret(secret_key), message.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def new_transaction_uuid() -> str:
    return str(uuid.uuid4())


def format_amount(amount: Amount) -> str:
    """Render an amount the way it is placed in the form and signed.

    Whole amounts are written without decimals ("100"), others keep two
    decimals ("99.50"); the gateway compares the signed string literally.
    """
    value = Decimal(str(amount))
    if value == value.to_integral_value():
        return str(int(value))
    return str(value.quantize(Decimal("0.01")))


def round_amount(amount: Amount) -> int:
    """Round to whole rupees (the test merchant only accepts integers)."""
    return int(Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_signature(
    total_amount: Amount,
    transaction_uuid: str,
    product_code: Optional[str] = None,
    secret_key: Optional[str] = None,
) -> str:
    """Sign a payment request.

    Example:
        >>> generate_signature(100, "11-201-13", "EPAYTEST")  # doctest: +SKIP
        'base64 signature'
    """
    product_code = product_code or settings.ESEWA_MERCHANT_CODE
    message = (
        f"total_amount={format_amount(total_amount)},"
        f"transaction_uuid={transaction_uuid},"
        f"product_code={product_code}"
    )
    logger.debug(f"Signing eSewa message: {message}")
    return _sign(message, secret_key)


def signed_message(data: Dict[str, Any]) -> str:
    """Rebuild the signed message from ``signed_field_names``.

    Fields are taken in the order listed, as ``field=value`` pairs joined by
    commas.
    """
    fields = [name.strip() for name in str(data.get("signed_field_names", "")).split(",")]
    return ",".join(f"{name}={data.get(name, '')}" for name in fields)


def sign_payload(data: Dict[str, Any], secret_key: Optional[str] = None) -> str:
    """Signature the gateway puts on a callback payload."""
    return _sign(signed_message(data), secret_key)


def verify_signature(data: Dict[str, Any], secret_key: Optional[str] = None) -> bool:
    """Verify the signature of a decoded callback payload."""
    signature = data.get("signature")
    if not data.get("signed_field_names") or not signature:
        return False

    expected = sign_payload(data, secret_key)
    valid = hmac.compare_digest(expected.encode("utf-8"), str(signature).encode("utf-8"))
    if not valid:
        logger.warning(f"eSewa signature mismatch for message: {signed_message(data)}")
    return valid


def create_form_data(
    amount: Amount,
    transaction_uuid: str,
    success_url: str,
    failure_url: str,
    product_code: Optional[str] = None,
    secret_key: Optional[str] = None,
) -> Dict[str, str]:
    """Build the fields of the gateway form.

    Tax, service and delivery charges are always zero, so ``total_amount``
    equals ``amount``.
    """
    product_code = product_code or settings.ESEWA_MERCHANT_CODE
    total_amount = format_amount(amount)

    return {
        "amount": total_amount,
        "tax_amount": "0",
        "total_amount": total_amount,
        "transaction_uuid": transaction_uuid,
        "product_code": product_code,
        "product_service_charge": "0",
        "product_delivery_charge": "0",
        "success_url": success_url,
        "failure_url": failure_url,
        "signed_field_names": SIGNED_FIELD_NAMES,
        "signature": generate_signature(total_amount, transaction_uuid, product_code, secret_key),
    }


def render_redirect_form(form_data: Dict[str, str], form_url: Optional[str] = None) -> str:
    """Render an auto-submitting HTML form that posts to the gateway."""
    action = escape(form_url or settings.ESEWA_FORM_URL, quote=True)
    inputs = "\n".join(
        f'      <input type="hidden" name="{escape(key, quote=True)}" '
        f'value="{escape(str(value), quote=True)}" />'
        for key, value in form_data.items()
    )
    return f"""<!DOCTYPE html>
<html>
  <head>
    <title>eSewa Payment</title>
  </head>
  <body>
    <h2>Redirecting to eSewa...</h2>
    <p>Please wait, you will be redirected to the eSewa payment page.</p>
    <form id="esewa-form" method="POST" action="{action}">
{inputs}
    </form>
    <script>document.getElementById('esewa-form').submit();</script>
  </body>
</html>
"""


def decode_callback(encoded: Optional[str]) -> Dict[str, Any]:
    """Decode the base64 JSON ``data`` parameter of a gateway callback.

    Raises:
        PaymentGatewayError: If the value is missing, not base64, or not a
            JSON object.
    """
    if not encoded:
        raise PaymentGatewayError("No data received from eSewa")

    try:
        # Query strings can turn '+' into ' '; restore it and any missing padding
        cleaned = encoded.strip().replace(" ", "+")
        cleaned += "=" * (-len(cleaned) % 4)
        decoded = base64.b64decode(cleaned).decode("utf-8")
        payload = json.loads(decoded)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise PaymentGatewayError(f"Invalid eSewa response: {e}") from e

    if not isinstance(payload, dict):
        raise PaymentGatewayError("Invalid eSewa response: expected a JSON object")
    return payload


def encode_callback(payload: Dict[str, Any]) -> str:
    """Inverse of :func:`decode_callback`, used to build signed test payloads."""
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("utf-8")


def parse_amount(value: Any) -> Decimal:
    """Parse a gateway amount such as "1,000.0"."""
    return Decimal(str(value).replace(",", ""))


async def check_transaction_status(
    total_amount: Amount,
    transaction_uuid: str,
    product_code: Optional[str] = None,
) -> Dict[str, Any]:
    """Query the gateway status API for a transaction.

    Transport errors are retried with exponential backoff; an HTTP error
    status is not retried.

    Returns:
        Gateway response, e.g.
            {
                "product_code": "EPAYTEST",
                "transaction_uuid": "...",
                "total_amount": 100.0,
                "status": "COMPLETE",
                "ref_id": "0001TS9"
            }

    Raises:
        PaymentGatewayError: If the gateway is unreachable or answers with an
            error status.
    """
    params = {
        "product_code": product_code or settings.ESEWA_MERCHANT_CODE,
        "total_amount": format_amount(total_amount),
        "transaction_uuid": transaction_uuid,
    }

    async def _request() -> httpx.Response:
        async with httpx.AsyncClient(timeout=settings.ESEWA_HTTP_TIMEOUT) as client:
            return await client.get(settings.ESEWA_STATUS_URL, params=params)

    try:
        response = await with_retry(
            _request,
            retry_on=(httpx.TransportError,),
            operation_name="eSewa status check",
        )
    except RetryExhaustedError as e:
        raise PaymentGatewayError(str(e)) from e

    if response.status_code != 200:
        raise PaymentGatewayError(
            f"eSewa status check failed: HTTP {response.status_code} {response.text[:200]}"
        )

    try:
        return response.json()
    except ValueError as e:
        raise PaymentGatewayError(f"eSewa status check returned invalid JSON: {e}") from e
