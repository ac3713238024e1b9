"""CSV export of listings for spreadsheet download."""

from typing import Iterable, Optional

from prophunter.models.listing import Listing, OperationType, SellerType

CSV_FILENAME = "leads_imoveis_prophunter.csv"
CSV_MIME_TYPE = "text/csv"

CSV_HEADERS = [
    "ID",
    "Título",
    "Operação",
    "Preço",
    "Localização",
    "Tipo Vendedor",
    "Confiança",
    "Telefone",
    "URL",
]

OPERATION_LABELS = {
    OperationType.RENT: "Aluguel",
    OperationType.SALE: "Venda",
}

SELLER_LABELS = {
    SellerType.OWNER: "Proprietário",
    SellerType.BROKER: "Corretor",
}

_SPECIAL_CHARS = (",", '"', "\n", "\r")


def quote(text: str) -> str:
    """Wrap in double quotes, doubling embedded quotes."""
    return '"' + text.replace('"', '""') + '"'


def quote_if_needed(text: Optional[str]) -> str:
    if not text:
        return ""
    if any(char in text for char in _SPECIAL_CHARS):
        return quote(text)
    return text


def format_number(value: float) -> str:
    """Integral values without the trailing .0 (450000, not 450000.0)."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def listing_row(listing: Listing) -> list[str]:
    return [
        quote_if_needed(listing.id),
        quote(listing.title),
        OPERATION_LABELS[listing.operation_type],
        format_number(listing.price),
        quote(listing.location),
        SELLER_LABELS[listing.seller_type],
        format_number(listing.confidence_score),
        quote_if_needed(listing.phone),
        quote_if_needed(listing.url),
    ]


def export_csv(listings: Iterable[Listing]) -> str:
    """
    Render listings as CSV text.

    Title and location are always quoted. Id, phone and URL are left bare
    unless they contain a separator, quote or line break.
    """
    lines = [",".join(CSV_HEADERS)]
    lines.extend(",".join(listing_row(listing)) for listing in listings)
    return "\n".join(lines)
