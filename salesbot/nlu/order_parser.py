"""Rule-based extraction of a direct order (SKU + quantity) from free text."""
import re
from dataclasses import dataclass
from typing import Optional

NUM_WORDS = {
    "uno": 1, "una": 1, "un": 1,
    "dos": 2, "tres": 3, "cuatro": 4, "cinco": 5,
    "seis": 6, "siete": 7, "ocho": 8, "nueve": 9, "diez": 10,
}

_QTY_ALT = r"\d+|" + "|".join(NUM_WORDS)

# "quiero 2|dos de SKU" / "comprar 2 SKU"
VERB_QTY_SKU = re.compile(
    r"\b(?:quiero|comprar|compra)\s+(" + _QTY_ALT + r")\s+(?:de\s+)?([A-Za-z0-9._-]{2,})\b",
    re.IGNORECASE,
)
# "SKU x2"
SKU_TIMES_QTY = re.compile(r"\b([A-Za-z0-9._-]{2,})\s*[xX]\s*(\d+)\b")
TOKEN = re.compile(r"[A-Za-z0-9._-]{2,}")
SKU_CHARS = re.compile(r"^[A-Z0-9._-]+$")


@dataclass(frozen=True)
class ParsedOrder:
    sku: str
    qty: int


def _to_number(token: str) -> Optional[int]:
    t = token.lower()
    if re.fullmatch(r"\d{1,3}", t):
        return max(1, int(t))
    return NUM_WORDS.get(t)


def is_likely_sku(token: str) -> bool:
    """Alphanumeric (plus . _ -) and carrying a digit or a separator."""
    t = token.upper().strip()
    if not SKU_CHARS.match(t):
        return False
    if re.search(r"[0-9]", t):
        return True
    return bool(re.search(r"[._-]", t))


def parse_order(text: str) -> Optional[ParsedOrder]:
    t = (text or "").strip()

    m = VERB_QTY_SKU.search(t)
    if m:
        qty = _to_number(m.group(1)) or 1
        sku = m.group(2).upper()
        if is_likely_sku(sku):
            return ParsedOrder(sku=sku, qty=max(1, qty))

    m = SKU_TIMES_QTY.search(t)
    if m:
        sku = m.group(1).upper()
        qty = max(1, int(m.group(2)))
        if is_likely_sku(sku):
            return ParsedOrder(sku=sku, qty=qty)

    # first SKU-looking token, quantity 1
    for tok in TOKEN.findall(t):
        sku = tok.upper()
        if is_likely_sku(sku):
            return ParsedOrder(sku=sku, qty=1)

    return None
