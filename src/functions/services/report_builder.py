"""Template dispatcher and view-model assembly.

Each template is shaped by one strategy:

- report: maintenance reports (labor/material lists, free-form report body)
- quote: quotes with derived totals and product groups
- passthrough: any other template; payload fields are forwarded unchanged
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from models import JobPayload

from .image_service import ImageResolution, ImageService
from .normalizer import normalize_list
from .pricing import (
    ProductGroup,
    QuoteHeader,
    collect_product_image_urls,
    derive_header,
    parse_product_groups,
    shape_product_groups,
)
from .template_service import TemplateService, template_key

logger = logging.getLogger(__name__)


class ShapingStrategy(str, Enum):
    """How a payload is shaped into a view-model."""

    REPORT = "report"
    QUOTE = "quote"
    PASSTHROUGH = "passthrough"


# Keys are template_key() forms of the template names
STRATEGY_BY_TEMPLATE: dict[str, ShapingStrategy] = {
    "preventiva": ShapingStrategy.REPORT,
    "corretiva": ShapingStrategy.REPORT,
    "relatorio": ShapingStrategy.REPORT,
    "orcamento": ShapingStrategy.QUOTE,
}


def strategy_for(template_name: str) -> ShapingStrategy:
    """Pick the shaping strategy for a template name."""
    return STRATEGY_BY_TEMPLATE.get(template_key(template_name), ShapingStrategy.PASSTHROUGH)


def _as_dict(value: Any) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


@dataclass
class PreparedReport:
    """Normalized payload, before images are fetched."""

    report_id: str
    template_name: str
    strategy: ShapingStrategy
    fields: dict[str, Any]
    photo_urls: list[str] = field(default_factory=list)
    product_image_urls: list[str] = field(default_factory=list)
    product_groups: list[ProductGroup] = field(default_factory=list)
    logo_url: str | None = None

    @property
    def image_urls(self) -> list[str]:
        """All URLs to resolve, photos first."""
        return self.photo_urls + self.product_image_urls


@dataclass
class BuiltReport:
    """A view-model ready for rendering, with the images it references."""

    template_name: str
    strategy: ShapingStrategy
    view_model: dict[str, Any]
    images: ImageResolution


class ReportBuilder:
    """Turns job payloads into render-ready view-models."""

    def __init__(
        self,
        templates: TemplateService,
        images: ImageService,
        product_image_base_url: str | None = None,
    ) -> None:
        """Initialize Report Builder.

        Args:
            templates: Loaded templates (used to validate the template name).
            images: Image resolver for photos and product images.
            product_image_base_url: Base URL for ``<prod_id>.jpg`` product photos.
        """
        self.templates = templates
        self.images = images
        self.product_image_base_url = product_image_base_url

    def normalize(self, payload: JobPayload) -> PreparedReport:
        """Shape the payload fields that do not depend on images.

        Raises:
            TemplateNotFoundError: If the payload names an unknown template.
        """
        template_name = self.templates.resolve_name(payload.template_name)
        strategy = strategy_for(template_name)
        data = payload.data

        prepared = PreparedReport(
            report_id=payload.report_id,
            template_name=template_name,
            strategy=strategy,
            fields={},
            photo_urls=normalize_list(data.get("fotos")),
            logo_url=payload.logo_url,
        )

        if strategy == ShapingStrategy.REPORT:
            prepared.fields = self._shape_report(data)
        elif strategy == ShapingStrategy.QUOTE:
            groups = parse_product_groups(data.get("produtos"))
            prepared.product_groups = groups
            prepared.product_image_urls = collect_product_image_urls(
                groups, self.product_image_base_url
            )
            prepared.fields = self._shape_quote_header(data, groups)
        else:
            prepared.fields = dict(data)

        logger.info(
            f"Normalized {payload.report_id} with template {template_name} "
            f"({strategy.value}, {len(prepared.photo_urls)} photos, "
            f"{len(prepared.product_image_urls)} product images)"
        )
        return prepared

    def _shape_report(self, data: Mapping[str, Any]) -> dict[str, Any]:
        return {
            "header": _as_dict(data.get("header")),
            "cliente": _as_dict(data.get("cliente")),
            "relatorio": _as_dict(data.get("relatorio")),
            "maoObra": normalize_list(data.get("maoObra") or data.get("maoDeObra")),
            "material": normalize_list(data.get("material") or data.get("materiais")),
        }

    def _shape_quote_header(
        self, data: Mapping[str, Any], groups: list[ProductGroup]
    ) -> dict[str, Any]:
        header = QuoteHeader.model_validate(_as_dict(data.get("header")))
        totals = derive_header(header, groups)
        return {
            "header": totals.to_view(header.model_extra),
            "cliente": _as_dict(data.get("cliente")),
            "_totals": totals,
        }

    def assemble(self, prepared: PreparedReport, resolution: ImageResolution) -> dict[str, Any]:
        """Merge shaped fields, identifiers and resolved images into a view-model."""
        photo_count = len(prepared.photo_urls)
        photo_outcomes = resolution.outcomes[:photo_count]
        product_outcomes = resolution.outcomes[photo_count:]

        fotos = [o.filename for o in photo_outcomes if o.filename]
        view_model = {k: v for k, v in prepared.fields.items() if k != "_totals"}

        if prepared.strategy == ShapingStrategy.QUOTE:
            local_images = {o.source_url: o.filename for o in product_outcomes if o.filename}
            view_model["produtos"] = shape_product_groups(
                prepared.product_groups,
                prepared.fields["_totals"],
                base_url=self.product_image_base_url,
                local_images=local_images,
            )

        view_model.update(
            {
                "reportId": prepared.report_id,
                "templateName": prepared.template_name,
                "fotos": fotos,
                "temFotos": bool(fotos),
                "imagensEmbutidas": len(resolution.assets),
            }
        )
        if prepared.logo_url:
            view_model["logoUrl"] = prepared.logo_url

        return view_model

    async def build(self, payload: JobPayload) -> BuiltReport:
        """Normalize, resolve images and assemble in one call."""
        prepared = self.normalize(payload)
        resolution = await self.images.resolve(prepared.image_urls)
        return BuiltReport(
            template_name=prepared.template_name,
            strategy=prepared.strategy,
            view_model=self.assemble(prepared, resolution),
            images=resolution,
        )
