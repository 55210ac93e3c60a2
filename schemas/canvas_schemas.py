"""
Pydantic schemas for the canvas form and AI assist results
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ActionKind(str, Enum):
    """Extraction strategy used for an AI-assisted action"""
    QUANTITATIVE_TRIPLE = "quantitative_triple"  # TAM / SAM / SOM
    TABULAR_LIST = "tabular_list"  # ranked competitors table
    FIXED_OBJECT = "fixed_object"  # five competitive forces
    FREE_TEXT_BLOCK = "free_text_block"  # narrative business plan
    OPEN_FIELD_MAP = "open_field_map"  # any subset of the form, brief-driven


class MergePolicy(str, Enum):
    """Whether a validated candidate overwrites an existing answer"""
    ALWAYS = "always"
    FILL_EMPTY_ONLY = "fill_empty_only"


# ==================== Form Definition ====================

class FormItem(BaseModel):
    """One question on a form page"""
    area: str
    question: str
    help: str = ""


class FormPage(BaseModel):
    """A form step with its ordered questions"""
    title: str
    items: List[FormItem] = Field(default_factory=list)


class FormDefinition(BaseModel):
    """Static form definition (form-pages.json)"""
    pages: List[FormPage] = Field(default_factory=list)


class FieldDescriptor(BaseModel):
    """Answerable question identified by a stable slug"""
    model_config = ConfigDict(frozen=True)

    field_id: str
    page_index: int
    page_title: str
    question: str
    area: str = ""


# ==================== Results ====================

class ActionOutcome(BaseModel):
    """Result of running one AI-assisted action"""
    action: str
    success: bool
    message: str
    updates: Dict[str, str] = Field(default_factory=dict)
    error_code: Optional[str] = None
    model: Optional[str] = None
    latency_ms: float = 0.0
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ExportPayload(BaseModel):
    """Exported canvas file"""
    model_config = ConfigDict(populate_by_name=True)

    version: int = 1
    exported_at: str = Field(alias="exportedAt")
    current_step: int = Field(alias="currentStep")
    answers: Dict[str, str] = Field(default_factory=dict)


class ImportedCanvas(BaseModel):
    """Sanitized content of an imported canvas file"""
    answers: Dict[str, str] = Field(default_factory=dict)
    current_step: int = 0
