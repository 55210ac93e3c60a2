"""
Shared fixtures for the test suite
"""
import pytest

from schemas.canvas_schemas import FormDefinition
from utils.content_flattener import flatten_message_content
from utils.field_registry import build_registry


@pytest.fixture
def small_form():
    """Minimal form: two context pages plus one page per action kind"""
    return FormDefinition.model_validate({
        "pages": [
            {"title": "Problema", "items": [
                {"area": "Problema", "question": "¿Qué problema resuelves?", "help": ""},
                {"area": "Problema", "question": "¿Por qué ahora?", "help": ""},
            ]},
            {"title": "Cliente", "items": [
                {"area": "Segmento", "question": "¿Quién es tu cliente?", "help": ""},
            ]},
            {"title": "TAM SAM SOM", "items": [
                {"area": "Mercado", "question": "TAM", "help": ""},
                {"area": "Mercado", "question": "SAM", "help": ""},
                {"area": "Mercado", "question": "SOM", "help": ""},
            ]},
            {"title": "Competidores", "items": [
                {"area": "Competencia", "question": "Competidores", "help": ""},
            ]},
            {"title": "Cinco fuerzas de Porter", "items": [
                {"area": "Porter", "question": "Rivalidad", "help": ""},
                {"area": "Porter", "question": "Nuevos entrantes", "help": ""},
                {"area": "Porter", "question": "Sustitutos", "help": ""},
                {"area": "Porter", "question": "Proveedores", "help": ""},
                {"area": "Porter", "question": "Clientes", "help": ""},
            ]},
            {"title": "Plan de negocio", "items": [
                {"area": "Plan", "question": "Plan de negocio", "help": ""},
            ]},
        ]
    })


@pytest.fixture
def registry(small_form):
    return build_registry(small_form)


@pytest.fixture
def provider_response():
    """Factory for LLMClient.generate() return values; chunk lists are flattened like the client does"""
    def _make(content, model="sonar-pro"):
        return {
            "content": flatten_message_content(content),
            "provider": "perplexity",
            "model": model,
            "latency": 0.4,
            "tokens": {"input": 120, "output": 60},
        }
    return _make
