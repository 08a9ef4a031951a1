"""
Field references.

Every value a template placeholder can be mapped to is one of four
explicit variants:

    RawField         a field of the response's owning form
    MetadataField    an attribute of the response itself
    CalculatedField  a pre-computed value supplied with the report request
    ExternalField    a column of an imported tabular source

The flat string ids shown to users (``edad``, ``_userName``,
``calc_total``, ``notas_media``) are a display concern only. They are
interpreted once, at the boundary, by ``parse_field_ref``; resolution
afterwards dispatches on the variant, so colliding display ids never
resolve to the wrong source.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Iterable, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


METADATA_PREFIX = "_"
CALCULATED_PREFIX = "calc_"


class MetadataKind(str, Enum):
    USER_NAME = "userName"
    USER_ROLE = "userRole"
    TIMESTAMP = "timestamp"


class RawField(BaseModel):
    kind: Literal["raw"] = "raw"
    id: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def field_id(self) -> str:
        return self.id


class MetadataField(BaseModel):
    kind: Literal["metadata"] = "metadata"
    name: MetadataKind

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def field_id(self) -> str:
        return f"{METADATA_PREFIX}{self.name.value}"


class CalculatedField(BaseModel):
    kind: Literal["calculated"] = "calculated"
    name: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def field_id(self) -> str:
        return f"{CALCULATED_PREFIX}{self.name}"


class ExternalField(BaseModel):
    kind: Literal["external"] = "external"
    source: str = Field(..., min_length=1)
    header: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def field_id(self) -> str:
        return f"{self.source}_{self.header}"


FieldRef = Annotated[
    Union[RawField, MetadataField, CalculatedField, ExternalField],
    Field(discriminator="kind"),
]

FIELD_REF_ADAPTER: TypeAdapter = TypeAdapter(FieldRef)


class AvailableField(BaseModel):
    """A selectable mapping target with its human label."""

    ref: FieldRef
    label: str

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def field_id(self) -> str:
        return self.ref.field_id


def parse_field_ref(field_id: str, source_names: Iterable[str] = ()) -> FieldRef:
    """
    Interpret a flat display id as an explicit field reference.

    Precedence: reserved metadata ids, ``calc_`` ids, ``<source>_<header>``
    ids of a known imported source (longest source name wins), and
    finally raw response field ids. Unknown ``_`` ids are treated as raw
    field ids rather than silently resolving to nothing.
    """
    if not field_id:
        raise ValueError("Field id must not be empty")

    if field_id.startswith(METADATA_PREFIX):
        for kind in MetadataKind:
            if field_id == f"{METADATA_PREFIX}{kind.value}":
                return MetadataField(name=kind)

    if field_id.startswith(CALCULATED_PREFIX) and len(field_id) > len(CALCULATED_PREFIX):
        return CalculatedField(name=field_id[len(CALCULATED_PREFIX):])

    for source in sorted(source_names, key=len, reverse=True):
        prefix = f"{source}_"
        if field_id.startswith(prefix):
            return ExternalField(source=source, header=field_id[len(prefix):])

    return RawField(id=field_id)
