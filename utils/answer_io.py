"""
Canvas export / import (JSON file format shared with the web form)
"""
import json
import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from config import settings
from schemas.canvas_schemas import ExportPayload, ImportedCanvas
from utils.answer_store import AnswerStore
from utils.exceptions import ImportFailed
from utils.field_registry import FieldSchemaRegistry, field_registry
from utils.logger import logger


def _iso_timestamp(moment: Optional[datetime] = None) -> str:
    """UTC ISO-8601 with milliseconds and a Z suffix, e.g. 2024-05-01T10:20:30.123Z"""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def export_answers(store: AnswerStore, exported_at: Optional[datetime] = None) -> Dict[str, Any]:
    """Serializable export payload for the whole answer set"""
    payload = ExportPayload(
        version=settings.EXPORT_VERSION,
        exportedAt=_iso_timestamp(exported_at),
        currentStep=store.current_step,
        answers=store.snapshot(),
    )
    return payload.model_dump(by_alias=True)


def import_answers(
    source: Union[str, bytes, Dict[str, Any]],
    registry: Optional[FieldSchemaRegistry] = None,
) -> ImportedCanvas:
    """
    Read an exported canvas

    Any object with an ``answers`` object is accepted. Non-string answers are
    dropped silently; ``currentStep`` is clamped into the form range when it is
    a number and defaults to 0 otherwise.

    Raises:
        ImportFailed: not JSON, not an object, or no answers
    """
    registry = registry or field_registry

    if isinstance(source, (str, bytes)):
        try:
            parsed = json.loads(source)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ImportFailed(detail=f"invalid JSON: {e}") from e
    else:
        parsed = source

    raw_answers = parsed.get("answers") if isinstance(parsed, dict) else None
    if not isinstance(raw_answers, dict):
        raise ImportFailed("El archivo no contiene respuestas.")

    answers = {key: value for key, value in raw_answers.items() if isinstance(value, str)}
    dropped = len(raw_answers) - len(answers)
    if dropped:
        logger.info(f"Import dropped {dropped} non-text answers")

    raw_step = parsed.get("currentStep")
    if isinstance(raw_step, (int, float)) and not isinstance(raw_step, bool) and not math.isnan(raw_step):
        current_step = int(max(0, min(raw_step, registry.summary_step_index)))
    else:
        current_step = 0

    return ImportedCanvas(answers=answers, current_step=current_step)


def load_into(store: AnswerStore, source: Union[str, bytes, Dict[str, Any]]) -> ImportedCanvas:
    """Import a canvas and replace the store's content with it"""
    imported = import_answers(source, registry=store.registry)
    store.replace(imported.answers, imported.current_step)
    logger.info(
        "Canvas imported",
        answers=len(imported.answers),
        current_step=imported.current_step,
    )
    return imported
