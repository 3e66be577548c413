"""Keyword, intent and quantity helpers for Spanish customer messages.

Everything here is pure: no state and no I/O. Matching runs on the
normalised text (lower-case, diacritics stripped), so patterns are written
without accents.
"""
import re
import unicodedata
from typing import Dict, List, Optional

from rapidfuzz import fuzz, process

from .order_parser import NUM_WORDS

STOPWORDS = {
    "hola", "buenas", "buenos", "dias", "tardes", "noches",
    "el", "la", "los", "las", "un", "una", "unos", "unas",
    "de", "del", "al", "a", "en", "y", "o", "u", "con", "para", "por",
    "que", "como", "cual", "donde",
    "tengo", "hay", "queda", "quedan", "disponible", "disponibles",
    "quiero", "comprar", "compra", "me", "interesa", "tu", "mi", "su",
    "si", "no", "favor", "porfa", "favorcito",
    "estoy", "buscando", "interesado", "interesada",
}

INTENTS = ("buy", "ask_inventory", "ask_availability", "ask_stock", "ask_price")

BUY_RE = re.compile(r"\b(quiero|comprar|compra|me\s+lo\s+llevo|me\s+llevo|agrega|anade|sumar)\b")
INVENTORY_RE = re.compile(
    r"\b(que\s+tienes|que\s+vendes|que\s+productos|articulos|productos|catalogo|"
    r"muestrame|muestra|muestras|mostrar|ensename|ver\s+inventario|ver\s+stock|manejas|maneja)\b"
)
AVAILABILITY_RE = re.compile(r"\b(tienes|hay|manejas|vendes|disponible|disponibles|stock)\b")
PRICE_RE = re.compile(r"\b(precio|cuanto\s+cuesta|vale|coste)\b")
STOCK_RE = re.compile(r"\b(cuantos|cuantas|cuanto|stock|quedan?)\b")

YES_RE = re.compile(r"(^|\b)(si|claro|dale|va|ok|okay|confirmo|lo\s+compro)\b")
STOCK_QUESTION_RE = re.compile(r"\b(cuantos|cuantas|cuanta|cuanto|stock|quedan?)\b")
NEGATIVE_RE = re.compile(r"\b(no\s+gracias|no\s+quiero(\s+nada)?|no\s+lo\s+quiero|mejor\s+no|ya\s+no|olvidalo)\b")
CANCEL_RE = re.compile(r"\bcancela(r)?(\s+pedido)?\b")
ALL_AVAILABLE_RE = re.compile(
    r"\b(los\s+dos|los\s+2|ambos|todo(\s+el)?\s+stock|todos|me\s+llevo\s+todos|me\s+llevo\s+los\s+dos)\b"
)


def normalize(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", (text or "").lower())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def singularize_basic(word: str) -> str:
    w = word.lower()
    if w.endswith("es"):
        return w[:-2]
    if w.endswith("s") and not w.endswith("is"):
        return w[:-1]
    return w


def extract_keywords(text: str) -> List[str]:
    t = re.sub(r"[^a-z0-9._\-\s]", " ", normalize(text))
    out: List[str] = []
    for w in t.split():
        if len(w) < 2 or w in STOPWORDS or w in out:
            continue
        out.append(w)
    return out[:6]


def parse_quantity_from_text(text: str) -> Optional[int]:
    t = normalize(text)
    for m in re.finditer(r"\b(\d{1,3})\b", t):
        n = int(m.group(1))
        if 1 <= n <= 999:
            return n
    m = re.search(r"\b(" + "|".join(NUM_WORDS) + r")\b", t)
    if m:
        return NUM_WORDS[m.group(1)]
    return None


def detect_intent(text: str) -> Optional[str]:
    t = normalize(text)

    if BUY_RE.search(t):
        return "buy"

    if INVENTORY_RE.search(t):
        return "ask_inventory"

    if AVAILABILITY_RE.search(t):
        if PRICE_RE.search(t):
            return "ask_price"
        if STOCK_RE.search(t):
            return "ask_stock"
        return "ask_availability"

    if PRICE_RE.search(t):
        return "ask_price"

    return None


def has_browse_intent(text: str) -> bool:
    return detect_intent(text) == "ask_inventory"


def is_affirmative(text: str) -> bool:
    return bool(YES_RE.search(normalize(text).strip()))


def is_clean_negative(text: str) -> bool:
    t = normalize(text).strip()
    if NEGATIVE_RE.search(t):
        return True
    if re.fullmatch(r"no[.!]?", t):
        return True
    return bool(CANCEL_RE.search(t))


def is_stock_question(text: str) -> bool:
    return bool(STOCK_QUESTION_RE.search(normalize(text)))


def wants_all_available(text: str) -> bool:
    return bool(ALL_AVAILABLE_RE.search(normalize(text)))


def parse_ordinal_index(text: str) -> Optional[int]:
    # only the first three listed options are addressable
    t = normalize(text)
    if re.search(r"\b(primero|primera|1ro)\b", t):
        return 0
    if re.search(r"\b(segundo|segunda|2do)\b", t):
        return 1
    if re.search(r"\b(tercero|tercera|3ro)\b", t):
        return 2
    return None


def pick_option(text: str, options: Dict[str, str], cutoff: float = 0.6) -> Optional[str]:
    """Key of the configured option the text names, or None.

    ``options`` maps keys (``"cash"``, ``"punto_medio"``) to display labels; both
    are matched, first as substrings of the text, then fuzzily.
    """
    q = normalize(text).strip()
    if not q or not options:
        return None
    names: List[str] = []
    keys: List[str] = []
    for key, label in options.items():
        for name in dict.fromkeys((normalize(key).replace("_", " "), normalize(label or ""))):
            if name:
                names.append(name)
                keys.append(key)
    for name, key in zip(names, keys):
        if name in q:
            return key
    result = process.extractOne(q, names, scorer=fuzz.WRatio, score_cutoff=cutoff * 100)
    if result:
        return keys[result[2]]
    return None
