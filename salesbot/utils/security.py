"""Security helpers: PII masking for safe logging."""
import re


def mask_pii(text: str) -> str:
    """Mask phone-like digit runs, keeping the last two digits."""
    if not text:
        return text
    def _mask(m):
        digits = re.sub(r"\D", "", m.group(0))
        return "*" * (len(digits) - 2) + digits[-2:]
    return re.sub(r"\+?\d[\d\-\s]{5,}\d", _mask, text)
