"""
In-process answer store shared by the API and the AI workflow
"""
import threading
from typing import Any, Dict, Mapping, Optional

from schemas.canvas_schemas import MergePolicy
from utils.field_registry import FieldSchemaRegistry, field_registry


class AnswerStore:
    """
    Lock-guarded answer map plus the current form step

    ``merge`` reads current values and writes the result under one lock, so a
    fill-empty-only merge always sees answers as they are at merge time, even
    when another action finished while its request was in flight.
    """

    def __init__(self, registry: Optional[FieldSchemaRegistry] = None):
        self.registry = registry or field_registry
        self._lock = threading.Lock()
        self._answers: Dict[str, str] = {}
        self._current_step = 0

    @property
    def current_step(self) -> int:
        return self._current_step

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._answers)

    def get(self, field_id: str) -> str:
        with self._lock:
            return self._answers.get(field_id, "")

    def set_answer(self, field_id: str, value: str) -> None:
        with self._lock:
            self._answers[field_id] = value

    def go_to_step(self, step: int) -> int:
        with self._lock:
            self._current_step = self.registry.clamp_step(step)
            return self._current_step

    def replace(self, answers: Mapping[str, str], current_step: int = 0) -> None:
        """Swap the whole answer set (import)"""
        with self._lock:
            self._answers = dict(answers)
            self._current_step = self.registry.clamp_step(current_step)

    def merge(self, candidates: Mapping[str, Any], policy: MergePolicy, merger=None) -> Dict[str, str]:
        """
        Merge extraction candidates and apply the resulting updates

        Returns:
            The updates that were written

        Raises:
            NoFieldsFilled: fill-empty-only merge had nothing to write
        """
        if merger is None:
            from agents.merger_agent import merger_agent as merger

        with self._lock:
            updates = merger.merge(candidates, self._answers, policy)
            self._answers = merger.apply(self._answers, updates)
            return updates


# Global store instance (single-user canvas)
answer_store = AnswerStore()
