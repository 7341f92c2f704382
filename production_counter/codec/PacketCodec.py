"""
Packet codec for the vision camera's TCP counter stream.

Wire format (ASCII text, no delimiter framing, one packet per read):

    TotalCount,OKCount,NGCount,ProductID,MfgDate,ExpDate

Dates are ``ddMMyy``. Example: ``10,12,2,Hehe,111225,110626``.

Malformed counts reject the whole frame; malformed dates only degrade the
date to ``None``.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from production_counter.exceptions import ParseError

FIELD_COUNT = 6
DATE_FORMAT = "%d%m%y"
DISPLAY_DATE_FORMAT = "%d/%m/%Y"
# Two-digit years below this are 20xx, the rest 19xx (invariant-culture cutoff 2049)
TWO_DIGIT_YEAR_PIVOT = 50

_COUNT_RE = re.compile(r"[0-9]+")
_DATE_RE = re.compile(r"[0-9]{6}")


@dataclass
class CameraPacket:
    """One decoded camera frame."""
    total_count: int
    ok_count: int
    ng_count: int
    product_id: str = ""
    mfg_date: Optional[date] = None
    exp_date: Optional[date] = None
    raw_mfg_date: str = ""
    raw_exp_date: str = ""


def decode(data: Union[bytes, str]) -> CameraPacket:
    """
    Decode one camera frame.

    Args:
        data: Raw bytes from the socket, or already-decoded text

    Returns:
        CameraPacket

    Raises:
        ParseError: empty frame, wrong field count, or a count field that is
            not a non-negative integer
    """
    if isinstance(data, bytes):
        text = data.decode("utf-8", errors="replace")
    else:
        text = data

    text = text.strip()
    if not text:
        raise ParseError("Empty packet")

    parts = [p.strip() for p in text.split(",")]
    if len(parts) != FIELD_COUNT:
        raise ParseError(f"Expected {FIELD_COUNT} fields, got {len(parts)}: {text!r}")

    total = _parse_count(parts[0], "total")
    ok = _parse_count(parts[1], "ok")
    ng = _parse_count(parts[2], "ng")

    raw_mfg, raw_exp = parts[4], parts[5]

    return CameraPacket(
        total_count=total,
        ok_count=ok,
        ng_count=ng,
        product_id=parts[3],
        mfg_date=parse_date(raw_mfg),
        exp_date=parse_date(raw_exp),
        raw_mfg_date=raw_mfg,
        raw_exp_date=raw_exp,
    )


def encode(packet: CameraPacket) -> str:
    """Serialize a packet back to its wire text (used by the simulator)."""
    mfg = format_date(packet.mfg_date) if packet.mfg_date else packet.raw_mfg_date
    exp = format_date(packet.exp_date) if packet.exp_date else packet.raw_exp_date
    return (
        f"{packet.total_count},{packet.ok_count},{packet.ng_count},"
        f"{packet.product_id},{mfg},{exp}"
    )


def _parse_count(value: str, name: str) -> int:
    if not _COUNT_RE.fullmatch(value):
        raise ParseError(f"Invalid {name} count: {value!r}")
    return int(value)


def parse_date(value: str) -> Optional[date]:
    """Strict ``ddMMyy`` parse; anything else yields None."""
    if not value or not _DATE_RE.fullmatch(value):
        return None
    day, month, year = int(value[0:2]), int(value[2:4]), int(value[4:6])
    year += 2000 if year < TWO_DIGIT_YEAR_PIVOT else 1900
    try:
        return date(year, month, day)
    except ValueError:
        return None


def format_date(value: Optional[date]) -> str:
    """Format as ``ddMMyy``; ``-`` when absent."""
    return value.strftime(DATE_FORMAT) if value else "-"


def format_date_display(value: Optional[date]) -> str:
    """Format as ``dd/MM/yyyy``; ``-`` when absent."""
    return value.strftime(DISPLAY_DATE_FORMAT) if value else "-"
