"""
Unit Tests for the registry, flattener, answer store, import/export and LLM client
"""
import json
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
import requests

from schemas.canvas_schemas import FormDefinition, MergePolicy
from utils.answer_io import export_answers, import_answers, load_into
from utils.answer_store import AnswerStore
from utils.content_flattener import extract_reply_text, flatten_message_content
from utils.exceptions import ActionUnavailable, ImportFailed, NoFieldsFilled, ProviderError
from utils.field_registry import build_registry, field_registry, load_prompts, make_field_id, slugify
from utils.llm_client import LLMClient
from utils.retry_decorator import with_retry
from agents.merger_agent import MergerAgent


# ==================== Field registry ====================

@pytest.mark.parametrize("question,expected", [
    ("¿Qué problema resuelves?", "que-problema-resuelves"),
    ("TAM: mercado total direccionable", "tam-mercado-total-direccionable"),
    ("  Poder de negociación de los clientes  ", "poder-de-negociacion-de-los-clientes"),
    ("Año 2025 / ¿Cuánto?", "ano-2025-cuanto"),
    ("¿¿??", ""),
])
def test_slugify(question, expected):
    assert slugify(question) == expected


def test_field_ids_follow_step_and_slug():
    assert make_field_id(4, "SAM: mercado servible") == "step-4-sam-mercado-servible"


def test_registry_ids_are_stable_and_ordered(registry, small_form):
    rebuilt = build_registry(small_form)

    assert [d.field_id for d in registry.descriptors] == [d.field_id for d in rebuilt.descriptors]
    assert registry.page_field_ids(2) == ("step-2-tam", "step-2-sam", "step-2-som")
    assert registry.page_field_ids(99) == ()
    assert registry.page_field_ids(-1) == ()
    assert len(registry) == 13
    assert "step-5-plan-de-negocio" in registry
    assert "plan-de-negocio" not in registry


def test_registry_page_lookup_ignores_case_and_spaces(registry):
    assert registry.find_step("tam sam som") == 2
    assert registry.find_step("TAMSAMSOM") == 2
    assert registry.find_step("Cinco  fuerzas de  porter") == 4
    assert registry.find_step("Resumen") == -1


def test_registry_steps(registry):
    assert registry.summary_step_index == 6
    assert registry.step_labels()[-1] == "Resumen"
    assert registry.clamp_step(-3) == 0
    assert registry.clamp_step(42) == 6


def test_registry_slug_collision_last_wins():
    form = FormDefinition.model_validate({"pages": [{"title": "Cliente", "items": [
        {"area": "A", "question": "¿Quién es tu cliente?"},
        {"area": "B", "question": "Quien es tu cliente"},
    ]}]})

    registry = build_registry(form)

    assert len(registry) == 2
    assert registry.field_ids == frozenset({"step-0-quien-es-tu-cliente"})
    assert registry.get("step-0-quien-es-tu-cliente").area == "B"
    assert registry.page_field_ids(0) == ("step-0-quien-es-tu-cliente",)


def test_bundled_form_loads():
    assert field_registry.find_step("TAM SAM SOM") == 4
    assert "step-4-tam-mercado-total-direccionable" in field_registry
    assert "step-7-plan-de-negocio" in field_registry
    assert len(field_registry.page_field_ids(6)) == 5


def test_load_prompts_skips_non_strings(tmp_path):
    path = tmp_path / "prompts.json"
    path.write_text(json.dumps({"tamsamsom": "  Estima  ", "porter": 3}), encoding="utf-8")

    assert load_prompts(path) == {"tamsamsom": "Estima"}


# ==================== Content flattener ====================

def test_flatten_string_unchanged():
    assert flatten_message_content("  hola\n") == "  hola\n"


def test_flatten_chunk_list():
    content = [{"type": "text", "text": "uno"}, {"type": "image"}, "dos", {"text": ""}, 7, {"text": "tres"}]

    assert flatten_message_content(content) == "uno\ndos\ntres"


def test_flatten_other_shapes():
    assert flatten_message_content(None) == ""
    assert flatten_message_content({"text": "x"}) == ""
    assert flatten_message_content([]) == ""


def test_extract_reply_text_shapes():
    assert extract_reply_text({"choices": [{"message": {"content": "hola"}}]}) == "hola"
    assert extract_reply_text({"choices": []}) == ""
    assert extract_reply_text({"choices": [{"delta": {}}]}) == ""
    assert extract_reply_text(None) == ""


# ==================== Answer store ====================

def test_store_merge_reads_answers_at_merge_time(registry):
    store = AnswerStore(registry)
    merger = MergerAgent(registry)
    requested_with = store.snapshot()

    store.set_answer("step-0-que-problema-resuelves", "escrito mientras tanto")
    updates = store.merge(
        {"step-0-que-problema-resuelves": "IA", "step-0-por-que-ahora": "IA"},
        MergePolicy.FILL_EMPTY_ONLY,
        merger=merger,
    )

    assert requested_with == {}
    assert updates == {"step-0-por-que-ahora": "IA"}
    assert store.get("step-0-que-problema-resuelves") == "escrito mientras tanto"


def test_store_fill_empty_only_leaves_store_untouched(registry):
    store = AnswerStore(registry)
    store.set_answer("step-1-quien-es-tu-cliente", "Pymes")

    with pytest.raises(NoFieldsFilled):
        store.merge({"step-1-quien-es-tu-cliente": "Bancos"}, MergePolicy.FILL_EMPTY_ONLY, merger=MergerAgent(registry))

    assert store.snapshot() == {"step-1-quien-es-tu-cliente": "Pymes"}


def test_store_step_is_clamped(registry):
    store = AnswerStore(registry)

    assert store.go_to_step(3) == 3
    assert store.go_to_step(100) == registry.summary_step_index
    assert store.go_to_step(-1) == 0


# ==================== Import / export ====================

def test_export_payload_shape(registry):
    store = AnswerStore(registry)
    store.replace({"step-2-tam": "100"}, current_step=3)

    payload = export_answers(store, exported_at=datetime(2024, 5, 1, 10, 20, 30, 123456, tzinfo=timezone.utc))

    assert payload == {
        "version": 1,
        "exportedAt": "2024-05-01T10:20:30.123Z",
        "currentStep": 3,
        "answers": {"step-2-tam": "100"},
    }


def test_import_restores_exported_canvas(registry):
    store = AnswerStore(registry)
    store.replace({"step-2-tam": "100", "step-2-sam": "50"}, current_step=2)
    exported = json.dumps(export_answers(store))

    other = AnswerStore(registry)
    load_into(other, exported)

    assert other.snapshot() == store.snapshot()
    assert other.current_step == 2


def test_import_drops_non_strings_and_clamps_step(registry):
    imported = import_answers(
        {"answers": {"a": "x", "b": 3, "c": None, "d": ["y"]}, "currentStep": 99},
        registry=registry,
    )

    assert imported.answers == {"a": "x"}
    assert imported.current_step == registry.summary_step_index


@pytest.mark.parametrize("raw_step,expected", [(-4, 0), (2.7, 2), ("3", 0), (True, 0), (None, 0), (float("nan"), 0)])
def test_import_step_values(registry, raw_step, expected):
    imported = import_answers({"answers": {}, "currentStep": raw_step}, registry=registry)

    assert imported.current_step == expected


@pytest.mark.parametrize("source", ["not json", b"\xff\xfe", "[1, 2]", '{"version": 1}', '{"answers": "x"}'])
def test_import_rejects_unreadable_files(registry, source):
    with pytest.raises(ImportFailed):
        import_answers(source, registry=registry)


def test_failed_import_keeps_store(registry):
    store = AnswerStore(registry)
    store.replace({"step-2-tam": "100"}, current_step=2)

    with pytest.raises(ImportFailed):
        load_into(store, '{"currentStep": 1}')

    assert store.snapshot() == {"step-2-tam": "100"}
    assert store.current_step == 2


# ==================== LLM client ====================

def _http_response(status=200, payload=None):
    response = Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.json.return_value = payload
    return response


def test_llm_client_without_key_is_unavailable():
    session = Mock()
    client = LLMClient(api_key="", session=session)

    with pytest.raises(ActionUnavailable):
        client.generate("hola")
    session.post.assert_not_called()


def test_llm_client_sends_single_user_message():
    session = Mock()
    session.post.return_value = _http_response(payload={
        "choices": [{"message": {"content": [{"type": "text", "text": "TAM: 1"}, {"type": "text", "text": "SAM: 2"}]}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 4},
    })
    client = LLMClient(api_key="pplx-test", api_url="https://example.test/chat", session=session)

    response = client.generate("Estima TAM", model="sonar-pro", temperature=0.1)

    args, kwargs = session.post.call_args
    assert args[0] == "https://example.test/chat"
    assert kwargs["json"] == {
        "model": "sonar-pro",
        "temperature": 0.1,
        "messages": [{"role": "user", "content": "Estima TAM"}],
    }
    assert kwargs["headers"]["Authorization"] == "Bearer pplx-test"
    assert response["content"] == "TAM: 1\nSAM: 2"
    assert response["tokens"] == {"input": 10, "output": 4}
    assert set(response) == {"content", "provider", "model", "latency", "tokens"}


def test_llm_client_http_error():
    session = Mock()
    session.post.return_value = _http_response(status=500)
    client = LLMClient(api_key="pplx-test", session=session)

    with pytest.raises(ProviderError) as exc_info:
        client.generate("hola")
    assert exc_info.value.detail == "HTTP 500"


def test_llm_client_non_json_body():
    session = Mock()
    response = _http_response()
    response.json.side_effect = ValueError("no json")
    session.post.return_value = response
    client = LLMClient(api_key="pplx-test", session=session)

    with pytest.raises(ProviderError):
        client.generate("hola")


def test_llm_client_request_exception():
    session = Mock()
    session.post.side_effect = requests.RequestException("boom")
    client = LLMClient(api_key="pplx-test", session=session)

    with pytest.raises(ProviderError):
        client.generate("hola")
    assert session.post.call_count == 1


def test_with_retry_retries_transport_errors_only():
    calls = {"transport": 0, "http": 0}

    @with_retry(max_attempts=3, min_wait=0, max_wait=0)
    def flaky():
        calls["transport"] += 1
        if calls["transport"] < 3:
            raise requests.ConnectionError("reset")
        return "ok"

    @with_retry(max_attempts=3, min_wait=0, max_wait=0)
    def rejected():
        calls["http"] += 1
        raise requests.HTTPError("500")

    assert flaky() == "ok"
    with pytest.raises(requests.HTTPError):
        rejected()
    assert calls == {"transport": 3, "http": 1}
