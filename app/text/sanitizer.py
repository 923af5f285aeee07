import hashlib
import re
import unicodedata

# C0 controls except tab, newline and carriage return, plus DEL
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_HORIZONTAL_WS = re.compile(r"[ \t]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def sanitize_text(text: object) -> str:
    """Normalize extracted text before hashing and chunking.

    Removes control characters, applies NFKC, collapses runs of spaces/tabs
    and more than two consecutive newlines, and trims the result. Non-string
    or empty input yields an empty string.
    """
    if not isinstance(text, str) or not text:
        return ""
    cleaned = _CONTROL_CHARS.sub("", text)
    cleaned = unicodedata.normalize("NFKC", cleaned)
    cleaned = _HORIZONTAL_WS.sub(" ", cleaned)
    cleaned = _EXCESS_NEWLINES.sub("\n\n", cleaned)
    return cleaned.strip()


def content_digest(text: str) -> str:
    """SHA-256 hex digest of normalized text, used for duplicate detection."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()
