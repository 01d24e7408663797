"""
scriptswift/validation.py — Form validation
===========================================
Turns the raw form payload (camelCase JSON from the UI) into a
GenerateScriptInput, or raises ValidationError naming the offending field.
"""

from __future__ import annotations

from urllib.parse import urlparse

from .errors import ValidationError
from .schemas import BusinessInfo, CustomerInfo, GenerateScriptInput


# (wire key, attribute, message)
_BUSINESS_FIELDS = (
    ("userName", "user_name", "Your name is required."),
    ("businessName", "business_name", "Business name is required."),
    ("productService", "product_service", "Product/Service description is required."),
    ("salesGoals", "sales_goals", "Sales goals are required."),
)

CUSTOMER_INFO_MESSAGE = (
    "Please provide a valid URL if 'Website URL' is selected, "
    "or a summary if 'Text Summary' is selected."
)
INVALID_URL_MESSAGE = "Invalid URL format."


def _as_text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def is_valid_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc) and " " not in url


def validate_business_info(data) -> BusinessInfo:
    if not isinstance(data, dict):
        raise ValidationError("businessInfo", "Business information is required.")
    values = {}
    for key, attr, message in _BUSINESS_FIELDS:
        value = _as_text(data.get(key))
        if not value:
            raise ValidationError(f"businessInfo.{key}", message)
        values[attr] = value
    return BusinessInfo(**values)


def validate_customer_info(data) -> CustomerInfo:
    """Exactly one of a well-formed URL or non-blank text, per `type`."""
    if not isinstance(data, dict):
        raise ValidationError("customerInfo.type", CUSTOMER_INFO_MESSAGE)

    kind = data.get("type")
    if kind == "url":
        url = _as_text(data.get("url"))
        if not url:
            raise ValidationError("customerInfo.type", CUSTOMER_INFO_MESSAGE)
        if not is_valid_url(url):
            raise ValidationError("customerInfo.url", INVALID_URL_MESSAGE)
        return CustomerInfo(type="url", url=url)

    if kind == "text":
        text = data.get("text")
        if not _as_text(text):
            raise ValidationError("customerInfo.type", CUSTOMER_INFO_MESSAGE)
        return CustomerInfo(type="text", text=text)

    raise ValidationError("customerInfo.type", CUSTOMER_INFO_MESSAGE)


def validate_form(data) -> GenerateScriptInput:
    """Validate a full form submission.

    Args:
        data: dict with `businessInfo` and `customerInfo` keys.

    Returns:
        GenerateScriptInput ready for ConversationSession.start().

    Raises:
        ValidationError: with `field` set to the dotted wire path.
    """
    if isinstance(data, GenerateScriptInput):
        return data
    if not isinstance(data, dict):
        raise ValidationError("form", "Form data must be an object.")
    return GenerateScriptInput(
        business_info=validate_business_info(data.get("businessInfo")),
        customer_info=validate_customer_info(data.get("customerInfo")),
    )
