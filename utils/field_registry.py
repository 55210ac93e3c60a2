"""
Field Schema Registry - canonical field ids derived from the static form definition
"""
import json
import re
import unicodedata
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from config import settings
from schemas.canvas_schemas import FieldDescriptor, FormDefinition, FormPage
from utils.logger import logger


_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """
    Lower-case, strip diacritics and collapse every non-alphanumeric run to "-"

    >>> slugify("¿Qué problema resuelves?")
    'que-problema-resuelves'
    """
    decomposed = unicodedata.normalize("NFD", value.lower())
    without_marks = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM_RUN.sub("-", without_marks).strip("-")


def make_field_id(page_index: int, question: str) -> str:
    return f"step-{page_index}-{slugify(question)}"


def title_key(title: str) -> str:
    """Lookup key for page titles: lower-cased with all whitespace removed"""
    return re.sub(r"\s+", "", title.lower())


class FieldSchemaRegistry:
    """
    Immutable set of Field Descriptors for one form definition

    Built once at startup and shared by reference. ``descriptors`` keeps every
    declared question in page/item order; membership and ``get`` resolve ids
    last-wins when two questions collapse to the same slug.
    """

    def __init__(self, pages: Tuple[FormPage, ...], descriptors: Tuple[FieldDescriptor, ...]):
        self._pages = pages
        self._descriptors = descriptors

        by_id: Dict[str, FieldDescriptor] = {}
        page_ids: List[List[str]] = [[] for _ in pages]
        for descriptor in descriptors:
            if descriptor.field_id in by_id:
                logger.warning(
                    "Duplicate field id in form definition, later question wins",
                    field_id=descriptor.field_id,
                    question=descriptor.question,
                )
            by_id[descriptor.field_id] = descriptor
            if descriptor.field_id not in page_ids[descriptor.page_index]:
                page_ids[descriptor.page_index].append(descriptor.field_id)

        self._by_id = by_id
        self._field_ids: FrozenSet[str] = frozenset(by_id)
        self._page_ids = tuple(tuple(ids) for ids in page_ids)
        self._title_index: Dict[str, int] = {}
        for index, page in enumerate(pages):
            # first page wins for lookups, matching a linear search over the form
            self._title_index.setdefault(title_key(page.title), index)

    @property
    def pages(self) -> Tuple[FormPage, ...]:
        return self._pages

    @property
    def descriptors(self) -> Tuple[FieldDescriptor, ...]:
        return self._descriptors

    @property
    def field_ids(self) -> FrozenSet[str]:
        return self._field_ids

    @property
    def summary_step_index(self) -> int:
        """Index of the summary step that follows the last form page"""
        return len(self._pages)

    def __contains__(self, field_id: object) -> bool:
        return field_id in self._field_ids

    def __len__(self) -> int:
        return len(self._descriptors)

    def get(self, field_id: str) -> Optional[FieldDescriptor]:
        return self._by_id.get(field_id)

    def page_field_ids(self, step_index: int) -> Tuple[str, ...]:
        """
        Field ids of one page in declaration order

        Colliding slugs appear once, so a page with a collision counts fewer
        addressable fields than declared questions. Out-of-range steps give ().
        """
        if 0 <= step_index < len(self._page_ids):
            return self._page_ids[step_index]
        return ()

    def find_step(self, title: str) -> int:
        """Step index of the page whose title matches, or -1"""
        return self._title_index.get(title_key(title), -1)

    def clamp_step(self, step: int) -> int:
        return max(0, min(step, self.summary_step_index))

    def step_labels(self) -> List[str]:
        return [page.title for page in self._pages] + ["Resumen"]


def build_registry(form: FormDefinition) -> FieldSchemaRegistry:
    """
    Derive every Field Descriptor from the form definition

    Args:
        form: Static form definition

    Returns:
        FieldSchemaRegistry with descriptors in page and item order
    """
    pages = tuple(form.pages)
    descriptors = tuple(
        FieldDescriptor(
            field_id=make_field_id(page_index, item.question),
            page_index=page_index,
            page_title=page.title,
            question=item.question,
            area=item.area,
        )
        for page_index, page in enumerate(pages)
        for item in page.items
    )
    return FieldSchemaRegistry(pages, descriptors)


def load_form_definition(path: Union[str, Path, None] = None) -> FormDefinition:
    """Load and validate form-pages.json"""
    path = Path(path or settings.FORM_PAGES_PATH)
    with open(path, encoding="utf-8") as f:
        return FormDefinition.model_validate(json.load(f))


def load_prompts(path: Union[str, Path, None] = None) -> Dict[str, str]:
    """Load prompts.json; non-string entries are ignored"""
    path = Path(path or settings.PROMPTS_PATH)
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)
    return {key: value.strip() for key, value in raw.items() if isinstance(value, str)}


# Global registry instance
field_registry = build_registry(load_form_definition())
logger.info(
    f"Field schema registry built: {len(field_registry)} fields "
    f"across {field_registry.summary_step_index} pages"
)
