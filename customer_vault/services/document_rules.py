"""
Identity document rules — type checks and per-type card number formats.

    AADHAR    12 digits (spaces ignored)              stored as "1234 5678 9012"
    PAN       5 letters + 4 digits + 1 letter         stored upper-cased
    PASSPORT  6-9 letters/digits                      stored upper-cased
    LICENCE   8-20 letters/digits (spaces, hyphens    stored upper-cased,
              ignored)                                separators stripped

Type names are matched case-insensitively.
"""

import re

from customer_vault.models.document import DocumentType


_CARD_NUMBER_RULES: dict[DocumentType, tuple[re.Pattern, str]] = {
    # pattern, characters stripped before matching
    DocumentType.AADHAR: (re.compile(r"\d{12}"), r"\s"),
    DocumentType.PAN: (re.compile(r"[A-Z]{5}[0-9]{4}[A-Z]"), ""),
    DocumentType.PASSPORT: (re.compile(r"[A-Z0-9]{6,9}"), ""),
    DocumentType.LICENCE: (re.compile(r"[A-Z0-9]{8,20}"), r"[\s-]"),
}


def parse_document_type(document_type: str | None) -> DocumentType | None:
    """Return the DocumentType for a name, or None if it isn't one."""
    if not document_type:
        return None
    try:
        return DocumentType(document_type.strip().upper())
    except ValueError:
        return None


def validate_document_type(document_type: str | None) -> bool:
    return parse_document_type(document_type) is not None


def validate_card_number(document_type: str, card_number: str | None) -> bool:
    """Check a card number against the format rule of its document type."""
    doc_type = parse_document_type(document_type)
    if doc_type is None or not card_number:
        return False

    pattern, strip = _CARD_NUMBER_RULES[doc_type]
    candidate = card_number.upper()
    if strip:
        candidate = re.sub(strip, "", candidate)
    return pattern.fullmatch(candidate) is not None


def format_card_number(document_type: str, card_number: str) -> str:
    """
    Normalize a card number for storage.

    Separators are stripped and letters upper-cased; Aadhaar numbers are
    then grouped 4-4-4.
    """
    clean = re.sub(r"[\s-]", "", card_number).upper()
    if parse_document_type(document_type) is DocumentType.AADHAR and re.fullmatch(r"\d{12}", clean):
        return f"{clean[0:4]} {clean[4:8]} {clean[8:12]}"
    return clean
