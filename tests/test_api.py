"""
API Tests for the canvas endpoints
"""
import json
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

import api.main as main
from schemas.canvas_schemas import ActionOutcome


TAM_ID = "step-4-tam-mercado-total-direccionable"


@pytest.fixture
def api_client():
    main.answer_store.replace({}, current_step=0)
    yield TestClient(main.app)
    main.answer_store.replace({}, current_step=0)


def test_health(api_client):
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_form_lists_fields_and_actions(api_client):
    body = api_client.get("/form").json()

    assert body["summary_step_index"] == len(body["pages"])
    assert body["step_labels"][-1] == "Resumen"
    assert body["pages"][4]["action"] == "tamsamsom"
    assert body["pages"][0]["action"] is None
    assert body["pages"][4]["fields"][0]["field_id"] == TAM_ID
    assert "autocompletar" in body["actions"]


def test_put_answer_and_context(api_client):
    response = api_client.put(
        "/answers/step-0-que-problema-resuelves", json={"value": "Cobros lentos"}
    )
    assert response.status_code == 200

    context = api_client.get("/context", params={"until_step": 1}).json()["context"]
    assert context == "Problema:\n- ¿Qué problema resuelves?: Cobros lentos"
    assert api_client.get("/context", params={"until_step": 0}).json()["context"] == (
        "Sin respuestas previas disponibles."
    )


def test_put_unknown_answer(api_client):
    response = api_client.put("/answers/step-0-nope", json={"value": "x"})

    assert response.status_code == 404


def test_step_is_clamped(api_client):
    assert api_client.post("/step", json={"step": 99}).json()["current_step"] == main.field_registry.summary_step_index
    assert api_client.post("/step", json={"step": -2}).json()["current_step"] == 0


def test_export_then_import(api_client):
    api_client.put(f"/answers/{TAM_ID}", json={"value": "USD 1.000 M"})
    api_client.post("/step", json={"step": 4})

    exported = api_client.get("/export")
    assert exported.status_code == 200
    assert "busup-canvas.json" in exported.headers["content-disposition"]
    payload = exported.json()
    assert payload["version"] == 1
    assert payload["currentStep"] == 4

    main.answer_store.replace({}, current_step=0)
    response = api_client.post("/import", content=json.dumps(payload))

    assert response.status_code == 200
    assert response.json()["message"] == "Archivo importado correctamente."
    assert api_client.get("/answers").json() == {"current_step": 4, "answers": {TAM_ID: "USD 1.000 M"}}


def test_import_rejects_bad_file(api_client):
    main.answer_store.set_answer(TAM_ID, "previo")

    response = api_client.post("/import", content="esto no es json")

    assert response.status_code == 400
    assert response.json()["error_code"] == "import_failed"
    assert main.answer_store.get(TAM_ID) == "previo"


def test_unknown_action(api_client):
    assert api_client.post("/actions/swot").status_code == 404


def test_action_runs_workflow(api_client, provider_response):
    reply = provider_response("TAM: 1\nSAM: 2\nSOM: 3")

    with patch.object(main.llm_client, "generate", return_value=reply):
        response = api_client.post("/actions/tamsamsom")

    body = response.json()
    assert response.status_code == 200
    assert body["success"] is True
    assert body["updates"][TAM_ID] == "1"
    assert main.answer_store.get(TAM_ID) == "1"


def test_page_action_rejected_while_busy(api_client):
    assert main._page_action_lock.acquire(blocking=False)
    try:
        with patch.object(main.workflow, "run_action") as run_action:
            response = api_client.post("/actions/porter")
    finally:
        main._page_action_lock.release()

    assert response.status_code == 409
    run_action.assert_not_called()


def test_brief_action_runs_while_page_action_busy(api_client):
    outcome = ActionOutcome(action="autocompletar", success=True, message="Completamos 0 campos con IA.")

    assert main._page_action_lock.acquire(blocking=False)
    try:
        with patch.object(main.workflow, "run_action", return_value=outcome) as run_action:
            response = api_client.post("/actions/autocompletar", json={"brief": "Fintech"})
    finally:
        main._page_action_lock.release()

    assert response.status_code == 200
    run_action.assert_called_once_with("autocompletar", main.answer_store, "Fintech")
