from __future__ import annotations

from app.core.models import CaseStage


def _first_stage_id(case) -> int:
    return CaseStage.query.filter_by(case_id=case.id, orden=1).first().id


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"ok": True}


def test_api_requires_login(client, civil_case):
    response = client.get(f"/api/casos/{civil_case.id}/etapas")
    assert response.status_code == 401
    assert response.get_json()["error"]["code"] == "no_autenticado"


def test_login_rejects_bad_password(client):
    response = client.post("/auth/login", json={"email": "admin@estudio.local", "password": "nope"})
    assert response.status_code == 401
    assert response.get_json()["ok"] is False


def test_list_stages_returns_labels_and_pagination(client, login, civil_case):
    login("abogado@estudio.local")
    response = client.get(f"/api/casos/{civil_case.id}/etapas?limit=5")
    data = response.get_json()
    assert response.status_code == 200
    assert data["total"] == 9
    assert len(data["etapas"]) == 5
    assert data["etapas"][0]["costo_uf"] == "15.00"
    assert data["etapas"][0]["fecha_programada"] == "2024-01-01"
    assert data["etapas"][0]["estado_label"] == "Pendiente"


def test_payment_gate_over_http(client, login, civil_case):
    login("abogado@estudio.local")
    stage_id = _first_stage_id(civil_case)

    response = client.post(f"/api/etapas/{stage_id}/completar", json={})
    assert response.status_code == 409
    error = response.get_json()["error"]
    assert error["type"] == "precondition"
    assert error["code"] == "pago_pendiente"

    response = client.post(f"/api/etapas/{stage_id}/pagos", json={"monto": "15"})
    assert response.status_code == 200
    assert response.get_json()["etapa"]["estado_pago"] == "pagado"

    response = client.post(f"/api/etapas/{stage_id}/completar", json={"observaciones": "Listo"})
    assert response.status_code == 200
    assert response.get_json()["etapa"]["estado"] == "completado"


def test_validation_error_shape(client, login, civil_case):
    login("admin@estudio.local")
    stage_id = _first_stage_id(civil_case)
    response = client.post(f"/api/etapas/{stage_id}/pagos", json={"monto": "abc"})
    assert response.status_code == 400
    assert response.get_json()["error"]["type"] == "validation"


def test_version_conflict_over_http(client, login, civil_case):
    login("admin@estudio.local")
    stage_id = _first_stage_id(civil_case)
    response = client.patch(f"/api/etapas/{stage_id}", json={"descripcion": "x", "version": 7})
    assert response.status_code == 409
    assert response.get_json()["error"]["type"] == "conflict"


def test_client_cannot_mutate(client, login, civil_case):
    login("cliente@estudio.local")
    stage_id = _first_stage_id(civil_case)
    response = client.patch(f"/api/etapas/{stage_id}", json={"descripcion": "x"})
    assert response.status_code == 403
    assert response.get_json()["error"]["type"] == "permission"


def test_missing_stage_is_not_found(client, login):
    login("admin@estudio.local")
    response = client.get("/api/etapas/999999")
    assert response.status_code == 404
    assert response.get_json()["error"]["code"] == "etapa_no_encontrada"


def test_create_case_over_http(client, login):
    login("abogado@estudio.local")
    response = client.post(
        "/api/casos",
        json={
            "caratulado": "Banco con Comercial Sur",
            "materia": "Comercial",
            "nombre_cliente": "Banco",
            "honorario_total_uf": "60",
        },
    )
    assert response.status_code == 201
    case_id = response.get_json()["caso"]["id"]

    stages = client.get(f"/api/casos/{case_id}/etapas").get_json()["etapas"]
    assert len(stages) == 6
    assert stages[0]["es_publica"] is False


def test_advance_flow_over_http(client, login, civil_case):
    login("cliente@estudio.local")
    response = client.post(f"/api/casos/{civil_case.id}/avance/solicitar", json={"alcance": 2})
    assert response.status_code == 200

    login("abogado@estudio.local")
    response = client.post(f"/api/casos/{civil_case.id}/avance/autorizar", json={"alcance": 2})
    assert response.get_json()["caso"]["alcance_cliente_autorizado"] == 2

    response = client.put(f"/api/casos/{civil_case.id}/avance", json={"alcance": 5})
    assert response.status_code == 403

    login("cliente@estudio.local")
    data = client.get(f"/api/casos/{civil_case.id}/etapas").get_json()
    assert [s["orden"] for s in data["etapas"]] == [1, 2]


def test_audit_history_endpoint(client, login, civil_case):
    login("admin@estudio.local")
    response = client.get(f"/api/auditoria/case/{civil_case.id}")
    actions = [entry["action"] for entry in response.get_json()["historial"]]
    assert "GENERATE_STAGES" in actions


def test_language_switch_changes_messages(client, login):
    login("admin@estudio.local")
    client.post("/auth/lang", json={"lang": "en"})
    response = client.get("/api/etapas/999999")
    assert response.get_json()["error"]["message"] == "Stage not found"


def test_templates_endpoint(client, login):
    login("analista@estudio.local")
    data = client.get("/api/plantillas/Laboral").get_json()
    assert data["materia"] == "laboral"
    assert len(data["plantillas"]) == 8


def test_patch_cannot_force_payment_state(client, login, civil_case):
    login("abogado@estudio.local")
    stage_id = _first_stage_id(civil_case)
    response = client.patch(f"/api/etapas/{stage_id}", json={"estado_pago": "pagado", "estado": "completado"})
    assert response.status_code == 400
    assert response.get_json()["error"]["code"] == "estado_pago_no_editable"

    etapa = client.get(f"/api/etapas/{stage_id}").get_json()["etapa"]
    assert etapa["estado"] == "pendiente"
    assert etapa["estado_pago"] == "pendiente"


def test_case_listing_and_editing_over_http(client, login, civil_case):
    login("cliente@estudio.local")
    data = client.get("/api/casos").get_json()
    assert data["total"] == 1
    assert data["casos"][0]["numero_causa"] == "C-1234-2024"

    login("abogado@estudio.local")
    response = client.patch(f"/api/casos/{civil_case.id}", json={"tribunal": "Corte de Apelaciones"})
    assert response.status_code == 200
    assert response.get_json()["caso"]["tribunal"] == "Corte de Apelaciones"

    response = client.post(f"/api/casos/{civil_case.id}/abogado", json={"abogado_responsable_id": 1})
    assert response.status_code == 403
    assert response.get_json()["error"]["code"] == "sin_permisos"
