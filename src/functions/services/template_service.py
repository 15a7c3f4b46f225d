"""Template service for rendering report HTML.

Templates are logic-less Mustache files loaded once from disk. Rendering is a
pure function of the template text and the view-model.
"""

import logging
import unicodedata
from pathlib import Path
from typing import Any

import chevron

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".html"


class TemplateNotFoundError(Exception):
    """Raised when a job names a template that is not loaded."""

    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        self.reason = f"Unknown template '{name}'. Available: {', '.join(available) or 'none'}"
        super().__init__(self.reason)


def template_key(name: str) -> str:
    """Lookup key for a template name: case- and accent-insensitive."""
    decomposed = unicodedata.normalize("NFKD", name.strip())
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


class TemplateService:
    """Holds pre-loaded Mustache templates and renders them."""

    def __init__(self, templates: dict[str, str]) -> None:
        """Initialize Template Service.

        Args:
            templates: Mapping of template name to Mustache source.
        """
        self._templates: dict[str, tuple[str, str]] = {
            template_key(name): (name, source) for name, source in templates.items()
        }

    @classmethod
    def from_directory(cls, directory: str | Path) -> "TemplateService":
        """Load every ``*.html`` file in ``directory``; the file stem is the name."""
        path = Path(directory)
        templates = {
            file.stem: file.read_text(encoding="utf-8")
            for file in sorted(path.glob(f"*{TEMPLATE_SUFFIX}"))
        }
        logger.info(f"Loaded {len(templates)} templates from {path}: {', '.join(templates)}")
        return cls(templates)

    @property
    def template_names(self) -> list[str]:
        """Loaded template names as they appear on disk."""
        return sorted(name for name, _ in self._templates.values())

    def has_template(self, name: str) -> bool:
        """Check whether a template is loaded."""
        return template_key(name) in self._templates

    def resolve_name(self, name: str) -> str:
        """Canonical (on-disk) name of a template.

        Raises:
            TemplateNotFoundError: If no such template is loaded.
        """
        try:
            return self._templates[template_key(name)][0]
        except KeyError:
            raise TemplateNotFoundError(name, self.template_names) from None

    def render(self, name: str, view_model: dict[str, Any]) -> str:
        """Render a template with a view-model.

        Args:
            name: Template name (case/accent-insensitive).
            view_model: Data to substitute.

        Returns:
            str: Rendered HTML.

        Raises:
            TemplateNotFoundError: If no such template is loaded.
        """
        key = template_key(name)
        if key not in self._templates:
            raise TemplateNotFoundError(name, self.template_names)

        canonical, source = self._templates[key]
        html = chevron.render(source, view_model)
        logger.debug(f"Rendered template {canonical} ({len(html)} chars)")
        return html
