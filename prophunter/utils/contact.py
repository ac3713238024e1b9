"""Contact links and price display for Brazilian listings."""

import re
from typing import Optional
from urllib.parse import quote

DEFAULT_WHATSAPP_MESSAGE = "Olá, vi seu anúncio e gostaria de mais informações."


def whatsapp_link(phone: Optional[str], message: Optional[str] = DEFAULT_WHATSAPP_MESSAGE) -> Optional[str]:
    """
    wa.me link for a seller phone.

    Numbers with 10 or 11 digits (area code + number) get the 55 country code.
    Returns None when there is nothing to dial.
    """
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if not digits:
        return None
    if 10 <= len(digits) <= 11:
        digits = "55" + digits

    link = f"https://wa.me/{digits}"
    if message:
        link += f"?text={quote(message)}"
    return link


def _group_thousands(value: float, decimals: int) -> str:
    formatted = f"{value:,.{decimals}f}"
    # 1,234,567.89 -> 1.234.567,89
    return formatted.replace(",", "_").replace(".", ",").replace("_", ".")


def format_price_brl(price: float, operation: Optional[str] = None, compact: bool = False) -> str:
    """R$ 450.000,00, R$ 2.500,00/mês for rentals, or R$ 450 mil / R$ 1,2 mi when compact."""
    if compact:
        if price >= 1_000_000:
            amount = f"{_group_thousands(price / 1_000_000, 1).removesuffix(',0')} mi"
        elif price >= 1_000:
            amount = f"{_group_thousands(price / 1_000, 0)} mil"
        else:
            amount = _group_thousands(price, 0)
        text = f"R$ {amount}"
    else:
        text = f"R$ {_group_thousands(price, 2)}"

    if operation == "RENT":
        text += "/mês"
    return text
