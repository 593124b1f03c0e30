from __future__ import annotations

from datetime import date
from decimal import Decimal
from enum import Enum

import structlog
from flask import g, jsonify, request

from app.core.errors import StageError
from app.core.i18n import translate
from app.core.models import AuditLog, Case, CaseStage, UserRole
from app.core.permissions import require_actor, require_roles
from app.core.utils import money
from app.etapas import etapas_bp
from app.etapas.plantillas import available_matters, get_templates_for_matter, normalize_matter
from app.etapas.services import (
    assign_lawyer,
    audit_history,
    authorize_advance,
    case_detail,
    complete_stage,
    create_case,
    create_stage,
    delete_stage,
    get_stage,
    link_case_client,
    list_cases,
    list_stages,
    mark_stage_paid,
    register_payment,
    request_advance,
    request_payment,
    set_authorized_advance,
    set_payment_link,
    start_stage,
    update_case,
    update_stage,
)

logger = structlog.get_logger(__name__)

STAGE_FIELDS = (
    "id",
    "case_id",
    "etapa",
    "descripcion",
    "orden",
    "estado",
    "es_publica",
    "fecha_programada",
    "fecha_cumplida",
    "observaciones",
    "responsable_id",
    "requiere_pago",
    "costo_uf",
    "estado_pago",
    "enlace_pago",
    "monto_pagado_uf",
    "monto_variable_base",
    "porcentaje_variable",
    "notas_pago",
    "version",
)

CASE_FIELDS = (
    "id",
    "numero_causa",
    "caratulado",
    "materia",
    "tribunal",
    "nombre_cliente",
    "estado",
    "etapa_actual",
    "fecha_inicio",
    "abogado_responsable_id",
    "honorario_total_uf",
    "honorario_moneda",
    "modalidad_cobro",
    "tarifa_referencia",
    "honorario_variable_porcentaje",
    "honorario_variable_base",
    "alcance_cliente_solicitado",
    "alcance_cliente_autorizado",
    "etapas_generadas",
)


def _plain(value: object) -> object:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def stage_to_dict(stage: CaseStage) -> dict[str, object]:
    data = {field: _plain(getattr(stage, field)) for field in STAGE_FIELDS}
    data["estado_label"] = translate(f"stage.{stage.estado.value}")
    data["estado_pago_label"] = translate(f"payment.{stage.estado_pago.value}")
    data["costo_label"] = money(stage.costo_uf)
    data["pagado_label"] = money(stage.monto_pagado_uf)
    return data


def case_to_dict(case: Case) -> dict[str, object]:
    return {field: _plain(getattr(case, field)) for field in CASE_FIELDS}


def audit_to_dict(entry: AuditLog) -> dict[str, object]:
    return {
        "id": entry.id,
        "actor_id": entry.actor_id,
        "action": entry.action,
        "entity_type": entry.entity_type,
        "entity_id": entry.entity_id,
        "diff": entry.diff_json,
        "created_at": _plain(entry.created_at),
    }


def _payload() -> dict:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


@etapas_bp.errorhandler(StageError)
def stage_error(error: StageError):
    logger.info("request_refused", kind=error.kind, code=error.code)
    return jsonify({"ok": False, "error": error.to_dict()}), error.status_code


@etapas_bp.post("/casos")
@require_actor
def create_case_route():
    case = create_case(_payload(), g.actor)
    return jsonify({"ok": True, "caso": case_to_dict(case)}), 201


@etapas_bp.get("/casos")
@require_actor
def list_cases_route():
    filters = {
        key: request.args.get(key, "").strip()
        for key in (
            "estado",
            "abogado_responsable_id",
            "materia",
            "fecha_inicio_desde",
            "fecha_inicio_hasta",
            "search",
            "page",
            "limit",
        )
    }
    page = list_cases(g.actor, filters)
    return jsonify(
        {
            "ok": True,
            "casos": [case_to_dict(case) for case in page.items],
            "total": page.total,
            "page": page.page,
            "limit": page.limit,
        }
    )


@etapas_bp.get("/casos/<int:case_id>")
@require_actor
def case_detail_route(case_id: int):
    case = case_detail(case_id, g.actor)
    return jsonify({"ok": True, "caso": case_to_dict(case)})


@etapas_bp.patch("/casos/<int:case_id>")
@require_actor
def update_case_route(case_id: int):
    case = update_case(case_id, _payload(), g.actor)
    return jsonify({"ok": True, "caso": case_to_dict(case)})


@etapas_bp.post("/casos/<int:case_id>/abogado")
@require_roles(UserRole.ADMIN_FIRMA)
def assign_lawyer_route(case_id: int):
    case = assign_lawyer(case_id, _payload().get("abogado_responsable_id"), g.actor)
    return jsonify({"ok": True, "caso": case_to_dict(case)})


@etapas_bp.post("/casos/<int:case_id>/clientes")
@require_actor
def link_client_route(case_id: int):
    link = link_case_client(case_id, _payload().get("client_id"), g.actor)
    return jsonify({"ok": True, "case_id": link.case_id, "client_id": link.client_id}), 201


@etapas_bp.get("/casos/<int:case_id>/etapas")
@require_actor
def list_stages_route(case_id: int):
    filters = {
        key: request.args.get(key, "").strip()
        for key in ("estado", "responsable_id", "es_publica", "fecha_desde", "fecha_hasta", "page", "limit")
    }
    page = list_stages(case_id, g.actor, filters)
    return jsonify(
        {
            "ok": True,
            "etapas": [stage_to_dict(stage) for stage in page.items],
            "total": page.total,
            "page": page.page,
            "limit": page.limit,
        }
    )


@etapas_bp.post("/casos/<int:case_id>/etapas")
@require_actor
def create_stage_route(case_id: int):
    payload = _payload()
    payload["case_id"] = case_id
    stage = create_stage(payload, g.actor)
    return jsonify({"ok": True, "etapa": stage_to_dict(stage)}), 201


@etapas_bp.get("/etapas/<int:stage_id>")
@require_actor
def stage_detail_route(stage_id: int):
    stage = get_stage(stage_id, g.actor)
    return jsonify({"ok": True, "etapa": stage_to_dict(stage)})


@etapas_bp.patch("/etapas/<int:stage_id>")
@require_actor
def update_stage_route(stage_id: int):
    stage = update_stage(stage_id, _payload(), g.actor)
    return jsonify({"ok": True, "etapa": stage_to_dict(stage)})


@etapas_bp.delete("/etapas/<int:stage_id>")
@require_actor
def delete_stage_route(stage_id: int):
    delete_stage(stage_id, g.actor)
    return jsonify({"ok": True})


@etapas_bp.post("/etapas/<int:stage_id>/iniciar")
@require_actor
def start_stage_route(stage_id: int):
    stage = start_stage(stage_id, g.actor, _payload().get("version"))
    return jsonify({"ok": True, "etapa": stage_to_dict(stage)})


@etapas_bp.post("/etapas/<int:stage_id>/completar")
@require_actor
def complete_stage_route(stage_id: int):
    stage = complete_stage(stage_id, g.actor, _payload())
    return jsonify({"ok": True, "etapa": stage_to_dict(stage)})


@etapas_bp.post("/etapas/<int:stage_id>/pagos")
@require_actor
def register_payment_route(stage_id: int):
    payload = _payload()
    stage = register_payment(stage_id, payload.get("monto"), g.actor, payload.get("version"))
    return jsonify({"ok": True, "etapa": stage_to_dict(stage)})


@etapas_bp.post("/etapas/<int:stage_id>/pagada")
@require_actor
def mark_paid_route(stage_id: int):
    payload = _payload()
    confirm = str(payload.get("confirmar", "")).strip().lower() in {"1", "true", "si"}
    stage = mark_stage_paid(stage_id, g.actor, confirm=confirm, version=payload.get("version"))
    return jsonify({"ok": True, "etapa": stage_to_dict(stage)})


@etapas_bp.post("/etapas/<int:stage_id>/solicitar-pago")
@require_actor
def request_payment_route(stage_id: int):
    stage = request_payment(stage_id, g.actor)
    return jsonify({"ok": True, "etapa": stage_to_dict(stage)})


@etapas_bp.post("/etapas/<int:stage_id>/enlace-pago")
@require_actor
def payment_link_route(stage_id: int):
    stage = set_payment_link(stage_id, _payload().get("enlace_pago"), g.actor)
    return jsonify({"ok": True, "etapa": stage_to_dict(stage)})


@etapas_bp.post("/casos/<int:case_id>/avance/solicitar")
@require_actor
def request_advance_route(case_id: int):
    case = request_advance(case_id, _payload().get("alcance"), g.actor)
    return jsonify({"ok": True, "caso": case_to_dict(case)})


@etapas_bp.post("/casos/<int:case_id>/avance/autorizar")
@require_actor
def authorize_advance_route(case_id: int):
    case = authorize_advance(case_id, _payload().get("alcance"), g.actor)
    return jsonify({"ok": True, "caso": case_to_dict(case)})


@etapas_bp.put("/casos/<int:case_id>/avance")
@require_roles(UserRole.ADMIN_FIRMA)
def set_advance_route(case_id: int):
    case = set_authorized_advance(case_id, _payload().get("alcance"), g.actor)
    return jsonify({"ok": True, "caso": case_to_dict(case)})


@etapas_bp.get("/auditoria/<entity_type>/<int:entity_id>")
@require_actor
def audit_route(entity_type: str, entity_id: int):
    entries = audit_history(entity_type, entity_id, g.actor)
    return jsonify({"ok": True, "historial": [audit_to_dict(entry) for entry in entries]})


@etapas_bp.get("/plantillas/<materia>")
@require_actor
def templates_route(materia: str):
    templates = get_templates_for_matter(materia)
    return jsonify(
        {
            "ok": True,
            "materia": normalize_matter(materia),
            "materias": available_matters(),
            "plantillas": [
                {
                    "orden": index,
                    "etapa": template.etapa,
                    "descripcion": template.descripcion,
                    "dias_estimados": template.dias_estimados,
                    "es_publica": template.es_publica,
                    "porcentaje_honorario": str(template.porcentaje_honorario),
                }
                for index, template in enumerate(templates, start=1)
            ],
        }
    )
