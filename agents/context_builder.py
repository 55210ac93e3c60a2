"""
Context Builder - serializes prior answers into the outbound prompt
"""
from typing import Mapping, Optional

from utils.field_registry import FieldSchemaRegistry, field_registry, make_field_id
from utils.logger import logger


class ContextBuilder:
    """
    Deterministic text summary of the answers collected so far

    Pages come in form order and items in page order; pages without a
    non-blank answer are left out. An empty summary becomes a fixed sentence so
    the prompt always reads naturally.
    """

    NO_CONTEXT = "Sin respuestas previas disponibles."
    BRIEF_HEADER = "Instrucción del usuario:"
    CATALOG_HEADER = "Campos disponibles (fieldId: pregunta):"
    CONTEXT_HEADER = "Respuestas actuales:"

    def __init__(self, registry: Optional[FieldSchemaRegistry] = None):
        self.name = "ContextBuilder"
        self.registry = registry or field_registry

    def build(self, answers: Mapping[str, str], until_step: int) -> str:
        """
        Summarize non-empty answers on pages strictly before ``until_step``

        Args:
            answers: Current answer map
            until_step: Exclusive upper bound page index

        Returns:
            ``"<title>:\\n- <question>: <answer>"`` blocks separated by blank
            lines, or the NO_CONTEXT sentence
        """
        sections = []
        for page_index, page in enumerate(self.registry.pages[:max(until_step, 0)]):
            entries = []
            for item in page.items:
                field_id = make_field_id(page_index, item.question)
                answer = (answers.get(field_id) or "").strip()
                if answer:
                    entries.append(f"- {item.question}: {answer}")
            if entries:
                sections.append(f"{page.title}:\n" + "\n".join(entries))

        return "\n\n".join(sections) if sections else self.NO_CONTEXT

    def build_field_catalog(self) -> str:
        """One line per form field so the model can only answer with real ids"""
        return "\n".join(
            f"- {d.field_id} ({d.page_title}): {d.question}" for d in self.registry.descriptors
        )

    def build_prompt(
        self,
        prompt: str,
        answers: Mapping[str, str],
        until_step: int,
        brief: Optional[str] = None,
        include_catalog: bool = False,
    ) -> str:
        """
        Assemble the user message sent to the model

        Page actions send ``<prompt>\\n<context>``; the brief-driven action adds
        the user's brief and the field catalog before the current answers.
        """
        context = self.build(answers, until_step)
        if not include_catalog:
            return f"{prompt}\n{context}"

        parts = [prompt]
        if brief and brief.strip():
            parts.append(f"{self.BRIEF_HEADER}\n{brief.strip()}")
        parts.append(f"{self.CATALOG_HEADER}\n{self.build_field_catalog()}")
        parts.append(f"{self.CONTEXT_HEADER}\n{context}")
        logger.debug(f"{self.name}: prompt assembled with {len(self.registry)} catalog entries")
        return "\n\n".join(parts)


# Builder instance
context_builder = ContextBuilder()
