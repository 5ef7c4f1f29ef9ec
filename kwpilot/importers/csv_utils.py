"""KWPilot: Shared CSV parsing for Google Ads exports."""

import csv
import io
from typing import Dict, List, Optional

_STRIP_CHARS = (",", "%", "₹", "$", "€", "£")
_BLANKS = ("", "--", " --", "-")


def parse_number(value: Optional[str]) -> Optional[float]:
    """'1,234.5' → 1234.5, '12.3%' → 12.3, '--' → None."""
    if value is None:
        return None
    text = str(value).strip().strip('"')
    if text in _BLANKS:
        return None
    for ch in _STRIP_CHARS:
        text = text.replace(ch, "")
    text = text.strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def parse_int(value: Optional[str]) -> Optional[int]:
    number = parse_number(value)
    return int(number) if number is not None else None


def decode_bytes(raw: bytes) -> str:
    """Editor exports are UTF-16 with a BOM; web reports are UTF-8 (maybe with a BOM)."""
    if raw[:2] in (b"\xff\xfe", b"\xfe\xff"):
        return raw.decode("utf-16")
    return raw.decode("utf-8-sig", errors="replace")


def sniff_delimiter(sample: str) -> str:
    head = "\n".join(sample.splitlines()[:5])
    return "\t" if head.count("\t") > head.count(",") else ","


def read_rows(text: str, delimiter: Optional[str] = None) -> List[List[str]]:
    """All non-blank rows, cells stripped."""
    delimiter = delimiter or sniff_delimiter(text)
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)
    return [[cell.strip() for cell in row] for row in reader if any(c.strip() for c in row)]


def header_index(headers: List[str]) -> Dict[str, int]:
    """Lowercased header name → column index (first occurrence wins)."""
    index: Dict[str, int] = {}
    for i, name in enumerate(headers):
        index.setdefault(name.strip().lower(), i)
    return index


def cell(row: List[str], index: Dict[str, int], *names: str) -> str:
    """Value of the first header in `names` present in the row, or ''."""
    for name in names:
        i = index.get(name)
        if i is not None and i < len(row):
            return row[i].strip()
    return ""
