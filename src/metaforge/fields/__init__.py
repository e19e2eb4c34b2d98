"""Field engine: typed, self-validating value holders."""

from metaforge.fields.base import Field, FieldOwner
from metaforge.fields.catalog import FIELD_TYPES, build_field, field_class_for
from metaforge.fields.types import (
    BigTextField,
    BooleanField,
    DateField,
    DateTimeField,
    EmailField,
    EnumField,
    FloatField,
    IDField,
    ImageField,
    VideoField,
    IntegerField,
    MultiEnumField,
    PasswordField,
    RadioButtonSetField,
    RelatedRecordField,
    TextField,
    URLField,
)

__all__ = [
    "Field",
    "FieldOwner",
    "FIELD_TYPES",
    "build_field",
    "field_class_for",
    "TextField",
    "BigTextField",
    "IntegerField",
    "FloatField",
    "BooleanField",
    "DateField",
    "DateTimeField",
    "EmailField",
    "PasswordField",
    "IDField",
    "URLField",
    "ImageField",
    "VideoField",
    "EnumField",
    "MultiEnumField",
    "RadioButtonSetField",
    "RelatedRecordField",
]
