"""
Field mapping resolver.

Associates each template placeholder with exactly one catalog entry.
The mapping is built interactively; no default or fallback mapping is
ever invented. Generation is refused until every placeholder is mapped
to a reference present in the current catalog.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from reporter.app.errors import IncompleteMappingError, UnknownFieldError
from reporter.app.generation.catalog import FieldCatalog
from reporter.app.schemas.fields import FieldRef


class FieldMapping:

    def __init__(
        self,
        placeholders: Sequence[str],
        catalog: FieldCatalog,
        initial: Optional[Mapping[str, FieldRef]] = None,
    ) -> None:
        self._placeholders: List[str] = list(placeholders)
        self._catalog = catalog
        self._assignments: Dict[str, FieldRef] = {}
        for placeholder, ref in (initial or {}).items():
            if placeholder in self._placeholders:
                self._assignments[placeholder] = ref

    @property
    def placeholders(self) -> List[str]:
        return list(self._placeholders)

    @property
    def catalog(self) -> FieldCatalog:
        return self._catalog

    def _check_placeholder(self, placeholder: str) -> None:
        if placeholder not in self._placeholders:
            raise UnknownFieldError(
                f"Template has no placeholder <<{placeholder}>>"
            )

    def assign(self, placeholder: str, field_id: str) -> FieldRef:
        """Map a placeholder to the catalog entry currently shown for ``field_id``."""
        self._check_placeholder(placeholder)
        entry = self._catalog.find(field_id)
        if entry is None:
            raise UnknownFieldError(f"Field '{field_id}' is not available")
        self._assignments[placeholder] = entry.ref
        return entry.ref

    def unassign(self, placeholder: str) -> None:
        self._assignments.pop(placeholder, None)

    def get(self, placeholder: str) -> Optional[FieldRef]:
        return self._assignments.get(placeholder)

    def missing(self) -> List[str]:
        """Placeholders without a mapping to a field of the current catalog."""
        return [
            placeholder
            for placeholder in self._placeholders
            if placeholder not in self._assignments
            or not self._catalog.contains(self._assignments[placeholder])
        ]

    def is_complete(self) -> bool:
        return not self.missing()

    def require_complete(self) -> Dict[str, FieldRef]:
        """
        Return the completed mapping.

        Raises:
            IncompleteMappingError: at least one placeholder is unmapped.
        """
        missing = self.missing()
        if missing:
            raise IncompleteMappingError(missing)
        return self.as_dict()

    def as_dict(self) -> Dict[str, FieldRef]:
        return {
            placeholder: self._assignments[placeholder]
            for placeholder in self._placeholders
            if placeholder in self._assignments
        }

    def as_field_ids(self) -> Dict[str, str]:
        return {
            placeholder: ref.field_id
            for placeholder, ref in self.as_dict().items()
        }
