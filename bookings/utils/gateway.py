import logging
import uuid
from decimal import Decimal

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

SUCCESS_CODES = (100, 101)


def _config(name, default=None):
    return getattr(settings, name, default)


def gateway_amount(amount) -> int:
    """
    Convert ``amount`` to the whole currency units the gateway charges in.

    Raises:
        ValueError: If the amount has a fractional part.
    """
    amount = Decimal(str(amount))
    if amount != amount.to_integral_value():
        raise ValueError(f"Gateway amounts must be whole units, got {amount}")
    return int(amount)


def _post(path: str, payload: dict, booking_ref) -> dict:
    """
    POST ``payload`` to the gateway and normalise the outcome.

    Returns:
        dict with keys:
            - success (bool): Whether the gateway answered with a success code.
            - response (dict): The raw response data or error details.
    """
    base_url = _config("PAYMENT_GATEWAY_BASE_URL", "https://payment.zarinpal.com")
    timeout = _config("PAYMENT_GATEWAY_TIMEOUT", 10)
    try:
        response = requests.post(f"{base_url}{path}", json=payload, timeout=timeout)
        response_data = response.json()
    except requests.exceptions.Timeout as exc:
        logger.error("Gateway timeout: ref=%s path=%s error=%s", booking_ref, path, str(exc))
        return {"success": False, "response": {"error": "timeout", "detail": str(exc)}}
    except requests.exceptions.RequestException as exc:
        logger.error("Gateway request error: ref=%s path=%s error=%s", booking_ref, path, str(exc))
        return {"success": False, "response": {"error": "request_error", "detail": str(exc)}}

    data = response_data.get("data") or {}
    if data.get("code") in SUCCESS_CODES:
        return {"success": True, "response": response_data}

    logger.warning("Gateway rejected request: ref=%s path=%s response=%s", booking_ref, path, response_data)
    return {"success": False, "response": response_data}


def request_gateway_payment(booking_id: int, amount) -> dict:
    """
    Ask the payment gateway for a payment authority for a booking.

    Without a configured merchant id a mock authority is issued, so local
    environments can exercise the full flow.

    Returns:
        dict with keys ``success``, ``authority``, ``payment_url`` and ``response``.
    """
    merchant_id = _config("PAYMENT_GATEWAY_MERCHANT_ID")
    if not merchant_id:
        authority = f"mock-{uuid.uuid4().hex}"
        return {
            "success": True,
            "authority": authority,
            "payment_url": f"https://mock-gateway/pay?booking={booking_id}&authority={authority}",
            "response": {"mock": True},
        }

    result = _post(
        "/pg/v4/payment/request.json",
        {
            "merchant_id": merchant_id,
            "amount": gateway_amount(amount),
            "callback_url": _config("PAYMENT_GATEWAY_CALLBACK_URL"),
            "description": f"Booking #{booking_id}",
        },
        booking_id,
    )
    if not result["success"]:
        return {**result, "authority": None, "payment_url": None}

    authority = result["response"]["data"]["authority"]
    base_url = _config("PAYMENT_GATEWAY_BASE_URL", "https://payment.zarinpal.com")
    logger.info("Gateway authority issued: booking=%d authority=%s", booking_id, authority)
    return {
        **result,
        "authority": authority,
        "payment_url": f"{base_url}/pg/StartPay/{authority}",
    }


def verify_gateway_payment(authority: str, amount) -> dict:
    """
    Verify with the gateway that ``authority`` was paid for ``amount``.

    Returns:
        dict with keys ``success`` and ``response``.
    """
    merchant_id = _config("PAYMENT_GATEWAY_MERCHANT_ID")
    if not merchant_id:
        return {"success": True, "response": {"mock": True, "authority": authority}}

    return _post(
        "/pg/v4/payment/verify.json",
        {"merchant_id": merchant_id, "amount": gateway_amount(amount), "authority": authority},
        authority,
    )
