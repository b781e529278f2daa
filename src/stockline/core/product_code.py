"""Product code normalization for Stockline."""

import re

from stockline.core.errors import InvalidFormatError
from stockline.core.models import ProductCode

PRODUCT_CODE_PATTERN = re.compile(r"[A-Z0-9]{1,6}(?:-[A-Z0-9]{1,6}){3}", re.ASCII)

_IMAGE_EXTENSION = re.compile(r"\.(?:png|jpe?g|webp|gif)$", re.IGNORECASE)
# Unicode hyphens and dashes, minus sign, small and fullwidth hyphen-minus
_DASH_VARIANTS = re.compile("[\u2010-\u2015\u2212\ufe58\ufe63\uff0d]")
_WHITESPACE = re.compile(r"\s+")


def is_valid_product_code(text: str) -> bool:
    """Check whether text already has the canonical product code shape."""
    return PRODUCT_CODE_PATTERN.fullmatch(text) is not None


def normalize(raw: str) -> ProductCode:
    """Normalize scanned or typed text into a canonical product code.

    QR tags often embed the code in an image URL, so anything around the
    final path segment is discarded before validation.

    Args:
        raw: Text as decoded by the scanner or typed by the operator

    Returns:
        Canonical product code

    Raises:
        InvalidFormatError: If the text does not reduce to a valid code

    Examples:
        >>> normalize("https://cdn.example.com/tags/rb-10-02-16.jpg?v=2")
        'RB-10-02-16'
    """
    text = raw.strip()
    if not text:
        raise InvalidFormatError('Please enter a product code (e.g. "RB-10-02-16").')

    # Query and fragment first so a "/" inside them cannot pick the segment
    text = text.split("?", 1)[0].split("#", 1)[0]
    if "/" in text:
        text = text.rstrip("/").rsplit("/", 1)[-1]

    text = _IMAGE_EXTENSION.sub("", text)
    text = _DASH_VARIANTS.sub("-", text)
    text = _WHITESPACE.sub("", text)
    code = text.upper()

    if not is_valid_product_code(code):
        raise InvalidFormatError(
            f"Invalid product code: '{raw.strip()}'. "
            'Expected four dash-separated groups like "RB-10-02-16".'
        )

    return ProductCode(code)
