from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .provisioning.errors import TemplateValidationError
from .provisioning.template import ServerTemplate, summarize
from .provisioning.validation import validate_template

log = logging.getLogger("guildforge.catalog")

BUNDLED_DIR = Path(__file__).resolve().parent / "templates"


class TemplateNotFoundError(LookupError):
    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(f'Template "{template_id}" not found')


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    name: str
    description: str
    categories: int
    channels: int
    roles: int
    path: Path


class TemplateCatalog:
    """Template documents on disk, one JSON file per template.

    Files whose name starts with "_" are drafts and never listed.
    """

    def __init__(self, directory: Optional[Path] = None):
        self.directory = Path(directory) if directory else BUNDLED_DIR

    def _files(self) -> List[Path]:
        if not self.directory.is_dir():
            log.warning("Template directory %s does not exist", self.directory)
            return []
        return sorted(p for p in self.directory.glob("*.json") if not p.name.startswith("_"))

    def _read(self, path: Path) -> Dict:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)

    def entries(self) -> List[CatalogEntry]:
        result = []
        for path in self._files():
            try:
                document = self._read(path)
                template = ServerTemplate.from_dict(document)
            except (OSError, ValueError, KeyError, TypeError) as e:
                log.warning("Skipping unreadable template %s: %s", path.name, e)
                continue
            counts = summarize(template)
            result.append(CatalogEntry(
                id=template.id,
                name=template.name,
                description=template.description,
                categories=counts["categories"],
                channels=counts["channels"],
                roles=counts["roles"],
                path=path,
            ))
        return result

    def ids(self) -> List[str]:
        return [entry.id for entry in self.entries()]

    def load_document(self, template_id: str) -> Dict:
        for path in self._files():
            if path.stem == template_id:
                return self._read(path)
        for entry in self.entries():
            if entry.id == template_id:
                return self._read(entry.path)
        raise TemplateNotFoundError(template_id)

    def load(self, template_id: str, *, include_staff: bool = True) -> ServerTemplate:
        """Load and validate a template. Raises TemplateNotFoundError or TemplateValidationError."""
        document = self.load_document(template_id)
        result = validate_template(document, include_staff=include_staff)
        if not result.ok:
            raise TemplateValidationError(result)
        for warning in result.warnings:
            log.info("Template %s: %s: %s", template_id, warning.field, warning.message)
        return ServerTemplate.from_dict(document)
