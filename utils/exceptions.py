"""
Recoverable failures of the AI assist pipeline

Every error carries a stable ``code`` for API clients and a Spanish
``user_message`` that the form shows verbatim in its status banner.
"""
from typing import Optional


class AssistError(Exception):
    """Base class for all user-reportable assist failures"""

    code = "assist_error"
    default_message = "No pudimos completar la investigación automática."

    def __init__(self, user_message: Optional[str] = None, detail: Optional[str] = None):
        self.user_message = user_message or self.default_message
        self.detail = detail
        super().__init__(self.user_message if detail is None else f"{self.user_message} ({detail})")


class EmptyReply(AssistError):
    """The flattened model reply is blank"""

    code = "empty_reply"
    default_message = "La respuesta de la IA vino vacía."


class ExtractionFailed(AssistError):
    """No parse tier produced a structurally valid result for the action kind"""

    code = "extraction_failed"
    default_message = "No pudimos interpretar la respuesta del modelo."

    def __init__(self, reason: str, user_message: Optional[str] = None):
        self.reason = reason
        super().__init__(user_message, detail=reason)


class UnknownFieldsOnly(AssistError):
    """Every candidate referenced a key that is not part of the form"""

    code = "unknown_fields_only"
    default_message = "La IA respondió con campos que no existen en el formulario."


class NoFieldsFilled(AssistError):
    """A fill-empty-only merge found nothing left to fill"""

    code = "no_fields_filled"
    default_message = "La IA no encontró campos vacíos que pudiera completar."


class ActionUnavailable(AssistError):
    """The action cannot run with the current form, prompts or credentials"""

    code = "action_unavailable"
    default_message = "Esta acción de IA no está disponible."


class ProviderError(AssistError):
    """The LLM provider answered with an error or could not be reached"""

    code = "provider_error"
    default_message = "La API de Perplexity respondió con un error."


class ImportFailed(AssistError):
    """An imported canvas file could not be read"""

    code = "import_failed"
    default_message = "No reconocemos el archivo. Asegúrate de exportarlo desde la app."
