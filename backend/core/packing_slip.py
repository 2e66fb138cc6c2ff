"""
Best-effort packing slip parser.

OCR text is noisy, so everything here is heuristic: the result is a list of
suggestions the user reviews before logging a shipment, never something that
is applied directly.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

SHIPMENT_ID_PATTERNS = [
    re.compile(r"(?:packing\s*slip|shipment|order|invoice|po|purchase\s*order)[\s#:]*(\d{6,10})", re.I),
    re.compile(r"(?:^|\s)(\d{8,10})(?:\s|$)"),
    re.compile(r"(?:PS|SH|PO|INV)[\s#:]*(\d{6,10})", re.I),
    re.compile(r"(?:ref|reference|tracking|number)[\s#:]*(\d{6,10})", re.I),
    re.compile(r"(?:packing\s*slip|shipment|order)[\s#:]*([A-Z0-9]{6,12})", re.I),
]

_SKU = r"[A-Z0-9][A-Z0-9\-]*"

# (pattern, quantity comes first)
ITEM_PATTERNS = [
    (re.compile(rf"^({_SKU})\s{{2,}}(.+?)\s{{2,}}(\d+)\s*$"), False),
    (re.compile(rf"^({_SKU})\s+(.+?)\s+(\d+)\s*$"), False),
    (re.compile(rf"^(\d+)\s+({_SKU})\s+(.+)$"), True),
]

HEADER_LINE = re.compile(
    r"^(item|sku|product|description|qty|quantity|total|subtotal|shipping|tax|packing|slip|order|date)",
    re.I,
)

MATCH_THRESHOLD = 0.3

_WORD = re.compile(r"[a-z0-9]+")


@dataclass
class SlipLine:
    sku: str
    description: str
    quantity: int
    matched_sku: Optional[str] = None
    matched_description: Optional[str] = None
    score: float = 0.0


@dataclass
class ParsedSlip:
    shipment_id: str = ""
    lines: list[SlipLine] = field(default_factory=list)


def extract_shipment_id(lines: Iterable[str]) -> str:
    """First numeric id after a slip/order keyword wins; an alphanumeric candidate is only a fallback."""
    fallback = ""
    for line in lines:
        for pattern in SHIPMENT_ID_PATTERNS:
            m = pattern.search(line)
            if not m:
                continue
            candidate = m.group(1).strip()
            if candidate.isdigit():
                return candidate
            if not fallback:
                fallback = candidate
        if fallback:
            return fallback
    return fallback


def parse_item_line(line: str) -> Optional[SlipLine]:
    clean = line.strip()
    if not clean or HEADER_LINE.match(clean):
        return None
    for pattern, qty_first in ITEM_PATTERNS:
        m = pattern.match(clean)
        if not m:
            continue
        if qty_first:
            qty, sku, desc = m.group(1), m.group(2), m.group(3)
        else:
            sku, desc, qty = m.group(1), m.group(2), m.group(3)
        quantity = int(qty)
        if quantity <= 0 or not desc.strip():
            return None
        return SlipLine(sku=sku, description=desc.strip(), quantity=quantity)
    return None


def parse_packing_slip(text: str) -> ParsedSlip:
    lines = [ln for ln in (text or "").splitlines() if ln.strip()]
    items: list[SlipLine] = []
    seen: set[str] = set()
    for line in lines:
        parsed = parse_item_line(line)
        if parsed is None or parsed.sku.casefold() in seen:
            continue
        seen.add(parsed.sku.casefold())
        items.append(parsed)
    return ParsedSlip(shipment_id=extract_shipment_id(lines), lines=items)


def _words(text: str) -> set[str]:
    return set(_WORD.findall((text or "").lower()))


def word_overlap(a: str, b: str) -> float:
    wa, wb = _words(a), _words(b)
    if not wa or not wb:
        return 0.0
    return len(wa & wb) / min(len(wa), len(wb))


def match_inventory(lines: Iterable[SlipLine], items: Iterable) -> list[SlipLine]:
    """
    Attach the best inventory match to each parsed line.

    `items` are objects with `sku` and `description`. An exact SKU
    (case-insensitive) scores 1.0; otherwise the best description word
    overlap is used when it reaches MATCH_THRESHOLD.
    """
    catalog = list(items)
    by_sku = {it.sku.casefold(): it for it in catalog}
    out = []
    for ln in lines:
        best, score = by_sku.get(ln.sku.casefold()), 1.0
        if best is None:
            score = 0.0
            for it in catalog:
                s = word_overlap(ln.description, it.description)
                if s > score:
                    best, score = it, s
            if score < MATCH_THRESHOLD:
                best, score = None, 0.0
        out.append(
            SlipLine(
                sku=ln.sku,
                description=ln.description,
                quantity=ln.quantity,
                matched_sku=best.sku if best else None,
                matched_description=best.description if best else None,
                score=round(score, 3),
            )
        )
    return out
