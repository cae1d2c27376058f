"""Display helpers for ledger balances"""

from typing import Optional, Any

from config import get_settings
from models.ledger import LedgerDirection, to_amount

BALANCE_COLOR_CLASSES = {
    "positive": "text-red-600 dark:text-red-400",      # counterparty owes / we owe vendor
    "negative": "text-green-600 dark:text-green-400",  # credit or advance
    "zero": "text-gray-600 dark:text-gray-400",
}

STATUS_TEXT = {
    LedgerDirection.CUSTOMER: ("Outstanding", "Credit", "Settled"),
    LedgerDirection.VENDOR: ("Payable", "Credit", "Settled"),
}


def _group_digits(integer_part: str, grouping: str) -> str:
    if grouping != "indian" or len(integer_part) <= 3:
        return f"{int(integer_part):,}"
    head, tail = integer_part[:-3], integer_part[-3:]
    pairs = []
    while len(head) > 2:
        pairs.insert(0, head[-2:])
        head = head[:-2]
    if head:
        pairs.insert(0, head)
    return ",".join(pairs + [tail])


def format_currency(amount: Optional[Any], symbol: Optional[str] = None, grouping: Optional[str] = None) -> str:
    """
    Currency string with exactly two fraction digits, e.g. ₹1,23,456.70.
    None renders as the zero placeholder.
    """
    settings = get_settings()
    symbol = settings.currency_symbol if symbol is None else symbol
    grouping = grouping or settings.currency_grouping

    value = round(to_amount(amount), 2)
    integer_part, fraction = f"{abs(value):.2f}".split(".")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{_group_digits(integer_part, grouping)}.{fraction}"


def _sign_bucket(balance: float) -> int:
    if balance > 0:
        return 0
    if balance < 0:
        return 1
    return 2


def get_balance_color_class(balance: float) -> str:
    return BALANCE_COLOR_CLASSES[("positive", "negative", "zero")[_sign_bucket(balance)]]


def get_balance_status_text(balance: float, direction: LedgerDirection = LedgerDirection.CUSTOMER) -> str:
    """Outstanding / Credit / Settled (vendors: Payable / Credit / Settled)"""
    return STATUS_TEXT[direction][_sign_bucket(balance)]
