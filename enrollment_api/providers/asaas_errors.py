from __future__ import annotations

from typing import Any

import httpx

from enrollment_api.domain.errors import GatewayError, GatewaySemanticError, GatewayTransientError

# Human-readable fallbacks keyed by the gateway's machine-readable error code
ASAAS_ERROR_MESSAGES: dict[str, str] = {
    "invalid_token": "Payment account misconfigured. Please contact support.",
    "invalid_api_key": "Payment account misconfigured. Please contact support.",
    "unauthorized": "Access to the payment gateway was denied.",
    "invalid_cpfCnpj": "The CPF or CNPJ is not valid. Please check the document number.",
    "invalid_email": "The e-mail address is not valid.",
    "invalid_phone": "The phone number is not valid.",
    "invalid_postalCode": "The postal code is not valid.",
    "required_name": "The full name is required.",
    "required_cpfCnpj": "A CPF or CNPJ is required.",
    "required_email": "An e-mail address is required.",
    "customer_already_exists": "A customer with this CPF/CNPJ already exists.",
    "invalid_value": "The charge value must be greater than zero.",
    "invalid_dueDate": "The due date cannot be in the past.",
    "required_customer": "A customer is required to create the charge.",
    "required_billingType": "A payment method is required.",
    "invalid_billingType": "The selected payment method is not available.",
    "invalid_split": "The payment split configuration is not valid.",
    "payment_not_found": "The charge was not found.",
    "not_found": "The requested resource was not found at the payment gateway.",
    "invalid_creditCard": "The credit card data is not valid.",
    "expired_creditCard": "The credit card has expired.",
    "insufficient_funds": "The card has insufficient limit for this transaction.",
    "card_declined": "The card was declined by the issuer.",
    "empty_list_response": "The payment gateway returned an empty list instead of a customer.",
    "internal_server_error": "The payment gateway had a temporary error. Please try again in a few minutes.",
    "service_unavailable": "The payment gateway is temporarily unavailable. Please try again in a few minutes.",
    "rate_limit_exceeded": "Too many attempts. Please wait a few minutes before trying again.",
    "timeout": "The payment gateway did not answer in time. Please try again.",
    "connection_error": "Could not reach the payment gateway. Please try again.",
}

DEFAULT_MESSAGE = "The payment gateway rejected the request."

_STATUS_CODES = {
    401: "unauthorized",
    404: "not_found",
    429: "rate_limit_exceeded",
    500: "internal_server_error",
    502: "service_unavailable",
    503: "service_unavailable",
    504: "service_unavailable",
}


def user_message(code: str | None, fallback: str | None = None) -> str:
    if code and code in ASAAS_ERROR_MESSAGES:
        return ASAAS_ERROR_MESSAGES[code]
    return fallback or DEFAULT_MESSAGE


def extract_error(body: Any, status_code: int | None) -> tuple[str | None, str | None]:
    """Return (code, description) from an Asaas error body."""
    code: str | None = None
    description: str | None = None
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            code = errors[0].get("code") or None
            description = errors[0].get("description") or None
        elif isinstance(body.get("error"), dict):
            code = body["error"].get("code") or None
            description = body["error"].get("message") or None
        if description is None and body.get("message"):
            description = str(body["message"])
    if code is None and status_code is not None:
        code = _STATUS_CODES.get(status_code)
        if code is None and status_code >= 500:
            code = "internal_server_error"
    return code, description


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


def error_from_response(response: httpx.Response) -> GatewayError:
    try:
        body: Any = response.json()
    except ValueError:
        body = {"message": response.text[:512]} if response.text else None
    code, description = extract_error(body, response.status_code)
    error_cls = GatewayTransientError if is_transient_status(response.status_code) else GatewaySemanticError
    # Semantic errors surface the gateway's own description verbatim
    if error_cls is GatewaySemanticError and description:
        message = description
    else:
        message = user_message(code, description)
    return error_cls(message, code=code, description=description, http_status=response.status_code)


def error_from_exception(exc: httpx.HTTPError) -> GatewayTransientError:
    code = "timeout" if isinstance(exc, httpx.TimeoutException) else "connection_error"
    return GatewayTransientError(user_message(code), code=code, description=str(exc) or type(exc).__name__)
