"""
Pydantic schemas package
"""
from schemas.canvas_schemas import (
    ActionKind,
    MergePolicy,
    FormItem,
    FormPage,
    FormDefinition,
    FieldDescriptor,
    ActionOutcome,
    ExportPayload,
    ImportedCanvas,
)

__all__ = [
    "ActionKind",
    "MergePolicy",
    "FormItem",
    "FormPage",
    "FormDefinition",
    "FieldDescriptor",
    "ActionOutcome",
    "ExportPayload",
    "ImportedCanvas",
]
