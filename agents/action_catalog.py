"""
Action Catalog - static configuration of the AI-assisted actions
"""
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, List, Mapping, Optional

from agents.extractor_agent import ExtractorAgent, extractor_agent
from config import settings
from schemas.canvas_schemas import ActionKind, MergePolicy
from utils.exceptions import ActionUnavailable
from utils.field_registry import FieldSchemaRegistry, field_registry, load_prompts
from utils.logger import logger


@dataclass(frozen=True)
class ActionDescriptor:
    """One AI-assisted action, resolved against the form definition"""
    name: str
    kind: ActionKind
    step_index: Optional[int]  # None for the brief-driven action
    prompt_key: str
    model: str
    policy: MergePolicy
    required_fields: int
    parse: Callable[[str, Optional[int]], Dict[str, str]]

    @property
    def page_targeted(self) -> bool:
        return self.kind is not ActionKind.OPEN_FIELD_MAP


# name, kind, page title (None = whole form), prompt key, positional fields needed
ACTION_SPECS = (
    ("tamsamsom", ActionKind.QUANTITATIVE_TRIPLE, "TAM SAM SOM", "tamsamsom", 3),
    ("competidores", ActionKind.TABULAR_LIST, "Competidores", "competidores", 1),
    ("porter", ActionKind.FIXED_OBJECT, "Cinco fuerzas de Porter", "porter", 5),
    ("plan_de_negocio", ActionKind.FREE_TEXT_BLOCK, "Plan de negocio", "planDeNegocio", 1),
    ("autocompletar", ActionKind.OPEN_FIELD_MAP, None, "autocompletar", 0),
)

# Per-action model overrides; everything else uses PERPLEXITY_MODEL
ACTION_MODELS = {
    "autocompletar": "sonar",  # infers from the brief, no web research needed
}


class ActionCatalog:
    """
    Action descriptors built once from the registry and prompts

    Page lookups happen here, not per request. An entry whose page is missing
    from the form is kept with ``step_index=-1`` and reported as unavailable
    when invoked.
    """

    def __init__(
        self,
        registry: Optional[FieldSchemaRegistry] = None,
        prompts: Optional[Mapping[str, str]] = None,
        extractor: Optional[ExtractorAgent] = None,
    ):
        self.registry = registry or field_registry
        self.prompts = dict(prompts if prompts is not None else load_prompts())
        extractor = extractor or extractor_agent

        self._actions: Dict[str, ActionDescriptor] = {}
        self._by_step: Dict[int, ActionDescriptor] = {}
        for name, kind, page_title, prompt_key, required_fields in ACTION_SPECS:
            step_index = self.registry.find_step(page_title) if page_title else None
            descriptor = ActionDescriptor(
                name=name,
                kind=kind,
                step_index=step_index,
                prompt_key=prompt_key,
                model=ACTION_MODELS.get(name, settings.PERPLEXITY_MODEL),
                policy=MergePolicy.ALWAYS if page_title else MergePolicy.FILL_EMPTY_ONLY,
                required_fields=required_fields,
                parse=partial(extractor.extract, kind),
            )
            self._actions[name] = descriptor
            if step_index is not None and step_index >= 0:
                self._by_step.setdefault(step_index, descriptor)
            elif step_index == -1:
                logger.warning(f"Action '{name}' has no page titled '{page_title}' in the form")

    def names(self) -> List[str]:
        return list(self._actions)

    def get(self, name: str) -> Optional[ActionDescriptor]:
        return self._actions.get(name)

    def for_step(self, step_index: int) -> Optional[ActionDescriptor]:
        """Page-targeted action available on the given step, if any"""
        return self._by_step.get(step_index)

    def prompt_for(self, action: ActionDescriptor) -> str:
        return self.prompts.get(action.prompt_key, "")

    def ensure_runnable(self, action: ActionDescriptor) -> None:
        """
        Fail fast before any network call

        Raises:
            ActionUnavailable: page missing, too few fields, or prompt missing
        """
        if action.step_index == -1:
            raise ActionUnavailable(
                "No encontramos la sección del formulario para ejecutar la investigación.",
                detail=action.name,
            )
        if action.step_index is not None:
            declared = len(self.registry.page_field_ids(action.step_index))
            if declared < action.required_fields:
                raise ActionUnavailable(
                    "No encontramos los campos necesarios en el formulario.",
                    detail=f"{action.name}: {declared} of {action.required_fields} fields",
                )
        if not self.prompt_for(action):
            raise ActionUnavailable(
                "El prompt de investigación no está disponible.",
                detail=action.prompt_key,
            )


# Global catalog instance
action_catalog = ActionCatalog()
