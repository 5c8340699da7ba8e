"""Intermediate representation of a parsed proto3 file.

Everything here is immutable once built by the reducer; the Java generator
only reads it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum as _PyEnum
from typing import Optional, Tuple, Union


class ScalarType(_PyEnum):
    """proto3 built-in scalar types, valued by their proto keyword."""

    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"


class FieldLabel(_PyEnum):
    SINGULAR = "singular"
    OPTIONAL = "optional"
    REQUIRED = "required"
    REPEATED = "repeated"


@dataclass(frozen=True)
class CustomType:
    """A message or enum type referenced by name, as written in the source."""

    name: str


FieldType = Union[ScalarType, CustomType]


@dataclass(frozen=True)
class Field:
    ty: FieldType
    name: str
    order: int
    label: FieldLabel = FieldLabel.SINGULAR

    @property
    def is_repeated(self) -> bool:
        return self.label is FieldLabel.REPEATED


@dataclass(frozen=True)
class EnumValue:
    name: str
    number: int


@dataclass(frozen=True)
class Enum:
    name: str
    values: Tuple[EnumValue, ...] = ()


@dataclass(frozen=True)
class Message:
    name: str
    fields: Tuple[Field, ...] = ()
    nested_types: Tuple[TypeDecl, ...] = ()


TypeDecl = Union[Message, Enum]


@dataclass(frozen=True)
class ProtoModel:
    package: Optional[str] = None
    types: Tuple[TypeDecl, ...] = ()
