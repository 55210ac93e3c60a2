"""
Merger Agent - validates extraction candidates and applies the merge policy
"""
from typing import Any, Dict, Mapping, Optional

from agents.extractor_agent import as_text
from schemas.canvas_schemas import MergePolicy
from utils.exceptions import NoFieldsFilled
from utils.field_registry import FieldSchemaRegistry, field_registry
from utils.logger import logger


class MergerAgent:
    """
    Filters candidates against the field registry and decides what gets written

    ``ALWAYS`` overwrites existing answers; ``FILL_EMPTY_ONLY`` only writes keys
    whose current answer is absent or blank and refuses to return an empty
    update set. The answer map handed in is never mutated.
    """

    def __init__(self, registry: Optional[FieldSchemaRegistry] = None):
        self.name = "MergerAgent"
        self.registry = registry or field_registry
        logger.info(f"{self.name} initialized")

    def validate(self, candidates: Mapping[str, Any]) -> Dict[str, str]:
        """Keep registry field ids with a non-blank value, trimmed"""
        validated = {}
        for key, raw_value in candidates.items():
            if key not in self.registry:
                logger.warning(f"{self.name}: dropping candidate for unknown field", field_id=key)
                continue
            value = as_text(raw_value)
            if value:
                validated[key] = value
        return validated

    def merge(
        self,
        candidates: Mapping[str, Any],
        answers: Mapping[str, str],
        policy: MergePolicy,
    ) -> Dict[str, str]:
        """
        Compute the update map for one action result

        Args:
            candidates: Raw extractor output
            answers: Current answer map, read at merge time
            policy: Overwrite policy of the action

        Returns:
            Updates to apply to the answer map

        Raises:
            NoFieldsFilled: fill-empty-only merge left nothing to write
        """
        validated = self.validate(candidates)

        if MergePolicy(policy) is MergePolicy.ALWAYS:
            updates = validated
        else:
            updates = {
                key: value
                for key, value in validated.items()
                if not (answers.get(key) or "").strip()
            }
            if not updates:
                raise NoFieldsFilled(detail=f"{len(validated)} valid candidates, all already answered")

        logger.info(
            f"{self.name}: merge complete",
            policy=MergePolicy(policy).value,
            candidates=len(candidates),
            updates=len(updates),
        )
        return updates

    @staticmethod
    def apply(answers: Mapping[str, str], updates: Mapping[str, str]) -> Dict[str, str]:
        """New answer map with ``updates`` written over ``answers``"""
        merged = dict(answers)
        merged.update(updates)
        return merged


# Agent instance
merger_agent = MergerAgent()
