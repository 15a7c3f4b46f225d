"""Monetary derivation for quotes (orcamentos).

Derives net total, VAT and final total from the quote header using a single
cascade, and shapes product groups for display:

    gross - line discounts - financial discount (%) = net
    net + VAT (%) = final

Every amount is clamped at zero before formatting.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .normalizer import display_quantity, fmt, fmt_percent, parse_number

logger = logging.getLogger(__name__)


# ============================================================================
# Input schema
# ============================================================================


def _optional_number(v: Any) -> float | None:
    if v is None or (isinstance(v, str) and not v.strip()):
        return None
    return parse_number(v)


class LineItem(BaseModel):
    """One row of a product group. Unknown fields pass through to templates."""

    qty: float = 0.0
    preco: float = 0.0
    total: float = 0.0
    desconto: float = 0.0
    prod_id: str | None = None

    model_config = {"extra": "allow"}

    @field_validator("qty", "preco", "total", "desconto", mode="before")
    @classmethod
    def parse_amount(cls, v: Any) -> float:
        """Amounts are lenient: numeric strings, blanks and junk are accepted."""
        return parse_number(v)

    @field_validator("prod_id", mode="before")
    @classmethod
    def clean_prod_id(cls, v: Any) -> str | None:
        """Product ids may be numeric; blank and "0" mean no product."""
        if v is None or isinstance(v, (dict, list, bool)):
            return None
        cleaned = str(v).strip()
        return cleaned if cleaned and cleaned != "0" else None


class ProductGroup(BaseModel):
    """Named group of line items."""

    itens: list[LineItem] = Field(default_factory=list)

    model_config = {"extra": "allow"}

    @field_validator("itens", mode="before")
    @classmethod
    def coerce_items(cls, v: Any) -> list[Any]:
        """Drop anything that is not an item object."""
        if not isinstance(v, list):
            return []
        return [item for item in v if isinstance(item, Mapping)]

    @property
    def items_total(self) -> float:
        """Sum of line totals (already net of line discounts)."""
        return sum(item.total for item in self.itens)


class QuoteHeader(BaseModel):
    """Monetary header fields of a quote. Other fields pass through."""

    total_bruto: float | None = Field(default=None, alias="totalBruto")
    total_descontos_itens: float | None = Field(default=None, alias="totalDescontosItens")
    desconto_financeiro_percent: float | None = Field(default=None, alias="descontoFinanceiroPercent")
    desconto_financeiro_valor: float | None = Field(default=None, alias="descontoFinanceiroValor")
    taxa_iva: float = Field(default=0.0, alias="taxaIva")

    model_config = {"populate_by_name": True, "extra": "allow"}

    @field_validator(
        "total_bruto",
        "total_descontos_itens",
        "desconto_financeiro_percent",
        "desconto_financeiro_valor",
        mode="before",
    )
    @classmethod
    def parse_optional_amount(cls, v: Any) -> float | None:
        """Absent values stay None so they can be derived or defaulted."""
        return _optional_number(v)

    @field_validator("taxa_iva", mode="before")
    @classmethod
    def parse_rate(cls, v: Any) -> float:
        """VAT is a percentage (23 means 23%)."""
        return parse_number(v)


def parse_product_groups(raw: Any) -> list[ProductGroup]:
    """Validate the ``produtos`` field; anything but a list of objects is empty."""
    if not isinstance(raw, list):
        return []
    return [ProductGroup.model_validate(group) for group in raw if isinstance(group, Mapping)]


# ============================================================================
# Derivation
# ============================================================================


@dataclass(frozen=True)
class MonetaryHeader:
    """Derived quote totals. Raw floats are kept for further derivation."""

    gross: float
    line_discounts: float
    financial_discount_percent: float
    financial_discount: float
    net: float
    vat_rate: float
    vat: float
    final: float

    @property
    def discount_factor(self) -> float:
        """Multiplier left after the financial discount."""
        return 1 - self.financial_discount_percent / 100

    @property
    def vat_factor(self) -> float:
        """Multiplier applied by VAT."""
        return 1 + self.vat_rate / 100

    def to_view(self, passthrough: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Display-ready header; unknown header fields are kept as given."""
        return {
            **(passthrough or {}),
            "totalBruto": fmt(self.gross),
            "totalDescontosItens": fmt(self.line_discounts),
            "descontoFinanceiro": fmt(self.financial_discount) if self.financial_discount > 0 else None,
            "descontoFinanceiroPercent": fmt_percent(self.financial_discount_percent),
            "totalLiquido": fmt(self.net),
            "valorIva": fmt(self.vat),
            "totalFinal": fmt(self.final),
            "taxaIva": fmt_percent(self.vat_rate),
        }


def _financial_discount_percent(header: QuoteHeader, base: float) -> float:
    """Financial discount as a percentage of the post-line-discount base.

    ``descontoFinanceiroPercent`` wins. A bare ``descontoFinanceiroValor``
    amount is converted against ``base``. ``descontoFinanceiro`` is an output
    field (the amount) and is never read as input.
    """
    extra = header.model_extra or {}
    if "descontoFinanceiro" in extra:
        logger.warning(
            "Header field descontoFinanceiro is ignored on input; "
            "send descontoFinanceiroPercent or descontoFinanceiroValor"
        )

    amount = header.desconto_financeiro_valor
    if header.desconto_financeiro_percent is not None:
        if amount:
            logger.warning(
                f"Both descontoFinanceiroPercent and descontoFinanceiroValor given; "
                f"using {header.desconto_financeiro_percent}% and ignoring amount {amount}"
            )
        return min(100.0, max(0.0, header.desconto_financeiro_percent))

    if not amount or amount <= 0:
        return 0.0
    if base <= 0:
        logger.warning(f"Financial discount amount {amount} ignored: nothing to discount")
        return 0.0
    return min(100.0, amount * 100 / base)


def derive_header(header: QuoteHeader, groups: list[ProductGroup] | None = None) -> MonetaryHeader:
    """Run the monetary cascade for a quote header.

    Missing gross total and line-discount total are derived from the line
    items (item totals are net of their own discount).

    Args:
        header: Validated header fields.
        groups: Product groups, used only to fill in missing totals.

    Returns:
        MonetaryHeader: Derived totals, all non-negative.
    """
    items = [item for group in groups or [] for item in group.itens]

    line_discounts = header.total_descontos_itens
    if line_discounts is None:
        line_discounts = sum(item.desconto for item in items)

    gross = header.total_bruto
    if gross is None:
        gross = sum(item.total for item in items) + line_discounts

    gross = max(0.0, gross)
    line_discounts = max(0.0, line_discounts)
    vat_rate = max(0.0, header.taxa_iva)

    base = max(0.0, gross - line_discounts)
    percent = _financial_discount_percent(header, base)
    financial_discount = base * percent / 100
    net = max(0.0, base - financial_discount)
    vat = max(0.0, net * vat_rate / 100)

    return MonetaryHeader(
        gross=gross,
        line_discounts=line_discounts,
        financial_discount_percent=percent,
        financial_discount=financial_discount,
        net=net,
        vat_rate=vat_rate,
        vat=vat,
        final=net + vat,
    )


def group_subtotal(group: ProductGroup, totals: MonetaryHeader) -> float:
    """Group share of the final total, after financial discount and VAT."""
    return max(0.0, group.items_total * totals.discount_factor * totals.vat_factor)


def product_image_url(prod_id: str | None, base_url: str | None) -> str | None:
    """Product photos live at ``<base_url>/<prod_id>.jpg``."""
    if not prod_id or not base_url:
        return None
    return f"{base_url.rstrip('/')}/{prod_id}.jpg"


def collect_product_image_urls(groups: list[ProductGroup], base_url: str | None) -> list[str]:
    """Distinct product image URLs in first-seen order."""
    urls: list[str] = []
    for group in groups:
        for item in group.itens:
            url = product_image_url(item.prod_id, base_url)
            if url and url not in urls:
                urls.append(url)
    return urls


def shape_product_groups(
    groups: list[ProductGroup],
    totals: MonetaryHeader,
    base_url: str | None = None,
    local_images: Mapping[str, str] | None = None,
) -> list[dict[str, Any]]:
    """Shape product groups for display.

    The per-group subtotal is only shown when there is more than one group.

    Args:
        groups: Validated product groups.
        totals: Derived header totals (for discount and VAT factors).
        base_url: Product image base URL, if configured.
        local_images: Map of source image URL to embedded asset filename.

    Returns:
        list[dict]: Groups with formatted items and optional subtotal.
    """
    local_images = local_images or {}
    show_subtotals = len(groups) > 1
    shaped = []

    for group in groups:
        items = []
        for item in group.itens:
            foto_url = product_image_url(item.prod_id, base_url)
            items.append(
                {
                    **(item.model_extra or {}),
                    "prod_id": item.prod_id,
                    "qty": display_quantity(item.qty),
                    "preco": fmt(item.preco),
                    "total": fmt(item.total),
                    "desconto": fmt(item.desconto) if item.desconto > 0 else None,
                    "fotoUrl": foto_url,
                    "foto": local_images.get(foto_url) if foto_url else None,
                }
            )

        shaped.append(
            {
                **(group.model_extra or {}),
                "itens": items,
                "totalDoGrupo": fmt(group_subtotal(group, totals)) if show_subtotals else None,
            }
        )

    logger.debug(f"Shaped {len(shaped)} product groups (subtotals shown: {show_subtotals})")
    return shaped
