from __future__ import annotations

import re

from enrollment_api.domain.errors import ValidationError

_NON_DIGITS = re.compile(r"\D")

CPF_LENGTH = 11
CNPJ_LENGTH = 14


def strip_document_mask(document: str | None) -> str:
    """Return only the digits of a CPF/CNPJ."""
    return _NON_DIGITS.sub("", document or "")


def normalize_document(document: str | None) -> str:
    """Strip the mask and reject anything that is neither a CPF nor a CNPJ."""
    digits = strip_document_mask(document)
    if len(digits) not in (CPF_LENGTH, CNPJ_LENGTH):
        raise ValidationError("document must be 11 or 14 digits", code="invalid_cpfCnpj")
    return digits
