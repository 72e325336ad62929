from __future__ import annotations

from typing import Any

from ..core.constants import CURRENCY_SYMBOL


def format_number(value: Any) -> str:
    """500.0 -> "500", 250.5 -> "250.5"."""
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return str(value)
    if number.is_integer():
        return str(int(number))
    return f"{number:.2f}".rstrip("0").rstrip(".")


def _group_indian(digits: str) -> str:
    # 1234567 -> 12,34,567
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_inr(value: Any) -> str:
    """Rupee amount with Indian digit grouping, e.g. ₹1,25,000 or ₹-500.5."""
    text = format_number(value)
    sign = ""
    if text.startswith("-"):
        sign, text = "-", text[1:]
    whole, _, fraction = text.partition(".")
    if not whole.isdigit():
        return f"{CURRENCY_SYMBOL}{sign}{text}"
    grouped = _group_indian(whole)
    return f"{CURRENCY_SYMBOL}{sign}{grouped}{'.' + fraction if fraction else ''}"
