from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

import structlog
from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.orm import joinedload
from sqlalchemy.orm.exc import StaleDataError

from app.core.audit import log_audit
from app.core.errors import ConflictError, NotFoundError, PermissionDenied, PreconditionError, ValidationError
from app.core.extensions import db
from app.core.models import (
    EDITOR_ROLES,
    AuditLog,
    Case,
    CaseClient,
    CaseEstado,
    CaseStage,
    HonorarioMoneda,
    ModalidadCobro,
    PagoEstado,
    StageEstado,
    User,
    UserRole,
    utcnow,
)
from app.etapas.generacion import generate_initial_stages
from app.etapas.reglas import (
    OPEN_PAYMENT_STATES,
    StageState,
    client_can_see,
    parse_amount,
    parse_percentage,
    payment_state_for,
    validate_payment_link,
)

logger = structlog.get_logger(__name__)

MAX_STAGE_NAME = 100

# Fee structure that stage generation already distributed.
FROZEN_CASE_FIELDS = (
    "materia",
    "honorario_total_uf",
    "honorario_moneda",
    "modalidad_cobro",
    "honorario_variable_porcentaje",
    "honorario_variable_base",
)


@dataclass
class StagePage:
    items: list[CaseStage]
    total: int
    page: int
    limit: int


@dataclass
class CasePage:
    items: list[Case]
    total: int
    page: int
    limit: int


# -- parsing -----------------------------------------------------------------


def _text(payload: dict, key: str) -> str:
    value = payload.get(key)
    return str(value).strip() if value is not None else ""


def _required_text(payload: dict, key: str, max_length: int) -> str:
    value = _text(payload, key)
    if not value:
        raise ValidationError("campo_requerido", field=key)
    if len(value) > max_length:
        raise ValidationError("texto_largo", field=key, max=max_length)
    return value


def _parse_iso_date(value: object, field_name: str) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = (str(value) if value is not None else "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise ValidationError("fecha_invalida", field=field_name) from exc


def _parse_datetime(value: object, field_name: str) -> datetime | None:
    raw = (str(value) if value is not None else "").strip()
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw)
    except ValueError as exc:
        raise ValidationError("fecha_invalida", field=field_name) from exc


def _parse_int(value: object, field_name: str) -> int:
    if isinstance(value, bool):
        raise ValidationError("valor_invalido", field=field_name)
    if isinstance(value, int):
        return value
    raw = (str(value) if value is not None else "").strip()
    if not raw.lstrip("-").isdigit():
        raise ValidationError("valor_invalido", field=field_name)
    return int(raw)


def _parse_optional_id(value: object, field_name: str) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _parse_int(value, field_name)


def _parse_bool(value: object, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    raw = (str(value) if value is not None else "").strip().lower()
    if raw in {"1", "true", "si", "on"}:
        return True
    if raw in {"0", "false", "no", "off"}:
        return False
    raise ValidationError("valor_invalido", field=field_name)


def _parse_enum(enum_cls, value: object, field_name: str):
    raw = (str(getattr(value, "value", value)) if value is not None else "").strip()
    for member in enum_cls:
        if raw in (member.value, member.name):
            return member
    raise ValidationError("valor_invalido", field=field_name)


def _parse_orden(value: object) -> int:
    orden = _parse_int(value, "orden")
    if orden < 1:
        raise ValidationError("orden_invalido")
    return orden


# -- lookups and access ------------------------------------------------------


def case_by_id(case_id: int) -> Case:
    case = db.session.get(Case, case_id)
    if not case:
        raise NotFoundError("caso_no_encontrado")
    return case


def stage_by_id(stage_id: int) -> CaseStage:
    stage = CaseStage.query.options(joinedload(CaseStage.case)).filter_by(id=stage_id).first()
    if not stage:
        raise NotFoundError("etapa_no_encontrada")
    return stage


def can_access_case(actor: User, case: Case) -> bool:
    role = actor.role
    if role in (UserRole.ADMIN_FIRMA, UserRole.ANALISTA):
        return True
    if role == UserRole.ABOGADO:
        return case.abogado_responsable_id == actor.id
    if role == UserRole.CLIENTE:
        link = CaseClient.query.filter_by(case_id=case.id, client_id=actor.id).first()
        return link is not None
    return False


def _require_case_access(actor: User, case: Case) -> None:
    if not can_access_case(actor, case):
        raise PermissionDenied("sin_permisos_caso")


def _require_stage_editor(actor: User, stage: CaseStage, code: str) -> None:
    _require_case_access(actor, stage.case)
    if actor.role not in EDITOR_ROLES:
        raise PermissionDenied(code)
    if actor.role == UserRole.ABOGADO:
        owner = stage.responsable_id
        if owner is None and stage.case.abogado_responsable_id == actor.id:
            return
        if owner != actor.id:
            raise PermissionDenied("solo_responsable_etapa")


def _check_version(stage: CaseStage, version: object) -> None:
    if version is None or version == "":
        return
    if _parse_int(version, "version") != stage.version:
        logger.warning("stage_update_conflict", stage_id=stage.id, expected=version, current=stage.version)
        raise ConflictError("version_conflicto")


def _commit() -> None:
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        logger.warning("stage_update_conflict", reason="stale_flush")
        raise ConflictError("version_conflicto") from exc


def _snapshot(stage: CaseStage) -> dict[str, object]:
    return {
        "etapa": stage.etapa,
        "orden": stage.orden,
        "estado": stage.estado,
        "estado_pago": stage.estado_pago,
        "requiere_pago": stage.requiere_pago,
        "costo_uf": stage.costo_uf,
        "monto_pagado_uf": stage.monto_pagado_uf,
        "enlace_pago": stage.enlace_pago,
        "es_publica": stage.es_publica,
        "fecha_programada": stage.fecha_programada,
        "responsable_id": stage.responsable_id,
    }


# -- cases -------------------------------------------------------------------


def create_case(payload: dict, actor: User) -> Case:
    if actor.role not in EDITOR_ROLES:
        raise PermissionDenied("sin_permisos_crear_caso")

    caratulado = _required_text(payload, "caratulado", 500)
    materia = _required_text(payload, "materia", 100)
    nombre_cliente = _required_text(payload, "nombre_cliente", 200)

    total_raw = payload.get("honorario_total_uf")
    honorario_total = None if total_raw in (None, "") else parse_amount(total_raw, "honorario_total_uf")
    pagado_raw = payload.get("honorario_pagado_uf")
    if pagado_raw not in (None, "") and honorario_total is not None:
        if parse_amount(pagado_raw, "honorario_pagado_uf") > honorario_total:
            raise ValidationError("pagado_supera_total")

    abogado_id = _parse_optional_id(payload.get("abogado_responsable_id"), "abogado_responsable_id")
    if abogado_id is not None:
        abogado = db.session.get(User, abogado_id)
        if not abogado or abogado.role not in EDITOR_ROLES:
            raise ValidationError("valor_invalido", field="abogado_responsable_id")

    case = Case(
        numero_causa=_text(payload, "numero_causa"),
        caratulado=caratulado,
        materia=materia,
        tribunal=_text(payload, "tribunal"),
        nombre_cliente=nombre_cliente,
        estado=_parse_enum(CaseEstado, payload.get("estado") or CaseEstado.ACTIVO, "estado"),
        fecha_inicio=_parse_iso_date(payload.get("fecha_inicio"), "fecha_inicio") or date.today(),
        abogado_responsable_id=abogado_id or actor.id,
        honorario_total_uf=honorario_total,
        honorario_moneda=_parse_enum(
            HonorarioMoneda, payload.get("honorario_moneda") or HonorarioMoneda.UF, "honorario_moneda"
        ),
        modalidad_cobro=_parse_enum(
            ModalidadCobro, payload.get("modalidad_cobro") or ModalidadCobro.PREPAGO, "modalidad_cobro"
        ),
        tarifa_referencia=_text(payload, "tarifa_referencia") or None,
        honorario_variable_porcentaje=parse_percentage(
            payload.get("honorario_variable_porcentaje"), "honorario_variable_porcentaje"
        ),
        honorario_variable_base=_text(payload, "honorario_variable_base") or None,
        honorario_notas=_text(payload, "honorario_notas"),
    )
    db.session.add(case)
    try:
        db.session.flush()
        generate_initial_stages(case, actor_id=actor.id, commit=False)
        log_audit("CREATE", "case", case.id, {"created": payload}, actor.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    logger.info("case_created", case_id=case.id, materia=case.materia, actor_id=actor.id)
    return case


def case_detail(case_id: int, actor: User) -> Case:
    case = case_by_id(case_id)
    _require_case_access(actor, case)
    return case


def list_cases(actor: User, filters: dict | None = None) -> CasePage:
    filters = filters or {}
    query = Case.query
    if actor.role == UserRole.ABOGADO:
        query = query.filter(Case.abogado_responsable_id == actor.id)
    elif actor.role == UserRole.CLIENTE:
        linked = db.select(CaseClient.case_id).where(CaseClient.client_id == actor.id)
        query = query.filter(Case.id.in_(linked))

    if filters.get("estado"):
        query = query.filter(Case.estado == _parse_enum(CaseEstado, filters["estado"], "estado"))
    if filters.get("abogado_responsable_id"):
        abogado_id = _parse_int(filters["abogado_responsable_id"], "abogado_responsable_id")
        query = query.filter(Case.abogado_responsable_id == abogado_id)
    if filters.get("materia"):
        query = query.filter(Case.materia == filters["materia"])
    desde = _parse_iso_date(filters.get("fecha_inicio_desde"), "fecha_inicio_desde")
    hasta = _parse_iso_date(filters.get("fecha_inicio_hasta"), "fecha_inicio_hasta")
    if desde:
        query = query.filter(Case.fecha_inicio >= desde)
    if hasta:
        query = query.filter(Case.fecha_inicio <= hasta)
    search = (filters.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Case.caratulado.ilike(pattern),
                Case.nombre_cliente.ilike(pattern),
                Case.numero_causa.ilike(pattern),
            )
        )

    default_limit = current_app.config.get("STAGES_PAGE_SIZE", 20)
    max_limit = current_app.config.get("STAGES_MAX_PAGE_SIZE", 100)
    page = max(_parse_int(filters.get("page") or 1, "page"), 1)
    limit = min(max(_parse_int(filters.get("limit") or default_limit, "limit"), 1), max_limit)

    total = query.count()
    items = (
        query.order_by(Case.created_at.desc(), Case.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return CasePage(items=items, total=total, page=page, limit=limit)


def _require_case_editor(actor: User, case: Case) -> None:
    if actor.role == UserRole.ADMIN_FIRMA:
        return
    if actor.role == UserRole.ABOGADO and case.abogado_responsable_id == actor.id:
        return
    raise PermissionDenied("sin_permisos_editar_caso")


def update_case(case_id: int, payload: dict, actor: User) -> Case:
    """Edit the descriptive fields of a case; the fee structure stays as generated."""
    case = case_by_id(case_id)
    _require_case_editor(actor, case)

    for key in FROZEN_CASE_FIELDS:
        if key in payload and case.etapas_generadas:
            raise ValidationError("campo_no_editable", field=key)

    changes: dict[str, object] = {}
    if "caratulado" in payload:
        changes["caratulado"] = _required_text(payload, "caratulado", 500)
    if "nombre_cliente" in payload:
        changes["nombre_cliente"] = _required_text(payload, "nombre_cliente", 200)
    if "numero_causa" in payload:
        changes["numero_causa"] = _text(payload, "numero_causa")
    if "tribunal" in payload:
        changes["tribunal"] = _text(payload, "tribunal")
    if "estado" in payload:
        changes["estado"] = _parse_enum(CaseEstado, payload.get("estado"), "estado")
    if "fecha_inicio" in payload:
        fecha = _parse_iso_date(payload.get("fecha_inicio"), "fecha_inicio")
        if fecha is None:
            raise ValidationError("campo_requerido", field="fecha_inicio")
        changes["fecha_inicio"] = fecha
    if "honorario_notas" in payload:
        changes["honorario_notas"] = _text(payload, "honorario_notas")
    if "tarifa_referencia" in payload:
        changes["tarifa_referencia"] = _text(payload, "tarifa_referencia") or None
    pagado_raw = payload.get("honorario_pagado_uf")
    if pagado_raw not in (None, "") and case.honorario_total_uf is not None:
        if parse_amount(pagado_raw, "honorario_pagado_uf") > case.honorario_total_uf:
            raise ValidationError("pagado_supera_total")

    before = {key: getattr(case, key) for key in changes}
    for key, value in changes.items():
        setattr(case, key, value)
    log_audit("UPDATE", "case", case.id, {"from": before, "to": changes}, actor.id)
    db.session.commit()
    logger.info("case_updated", case_id=case.id, fields=sorted(changes), actor_id=actor.id)
    return case


def assign_lawyer(case_id: int, abogado_id: object, actor: User) -> Case:
    if actor.role != UserRole.ADMIN_FIRMA:
        raise PermissionDenied("sin_permisos_asignar_abogado")
    case = case_by_id(case_id)
    abogado = db.session.get(User, _parse_int(abogado_id, "abogado_responsable_id"))
    if not abogado:
        raise NotFoundError("usuario_no_encontrado")
    if abogado.role not in EDITOR_ROLES:
        raise ValidationError("valor_invalido", field="abogado_responsable_id")
    before = case.abogado_responsable_id
    case.abogado_responsable_id = abogado.id
    log_audit("ASSIGN_LAWYER", "case", case.id, {"abogado_responsable": {"from": before, "to": abogado.id}}, actor.id)
    db.session.commit()
    logger.info("lawyer_assigned", case_id=case.id, abogado_id=abogado.id, actor_id=actor.id)
    return case


def link_case_client(case_id: int, client_id: object, actor: User) -> CaseClient:
    case = case_by_id(case_id)
    _require_case_access(actor, case)
    if actor.role not in EDITOR_ROLES:
        raise PermissionDenied("sin_permisos_caso")
    client = db.session.get(User, _parse_int(client_id, "client_id"))
    if not client:
        raise NotFoundError("usuario_no_encontrado")
    if client.role != UserRole.CLIENTE:
        raise ValidationError("cliente_invalido")
    link = CaseClient.query.filter_by(case_id=case.id, client_id=client.id).first()
    if link:
        return link
    link = CaseClient(case_id=case.id, client_id=client.id)
    db.session.add(link)
    log_audit("LINK_CLIENT", "case", case.id, {"client_id": client.id}, actor.id)
    db.session.commit()
    return link


def _refresh_current_stage(case: Case, completed_id: int) -> None:
    with db.session.no_autoflush:
        next_stage = (
            CaseStage.query.filter_by(case_id=case.id, estado=StageEstado.PENDIENTE)
            .filter(CaseStage.id != completed_id)
            .order_by(CaseStage.orden.asc())
            .first()
        )
    if next_stage:
        case.etapa_actual = next_stage.etapa


# -- stage CRUD --------------------------------------------------------------


def create_stage(payload: dict, actor: User) -> CaseStage:
    case = case_by_id(_parse_int(payload.get("case_id"), "case_id"))
    _require_case_access(actor, case)
    if actor.role not in EDITOR_ROLES:
        raise PermissionDenied("sin_permisos_crear_etapa")

    etapa = _required_text(payload, "etapa", MAX_STAGE_NAME)
    orden = _parse_orden(payload.get("orden"))
    estado = _parse_enum(StageEstado, payload.get("estado") or StageEstado.PENDIENTE, "estado")
    enlace = validate_payment_link(payload.get("enlace_pago"))
    requiere_pago = _parse_bool(payload.get("requiere_pago", False), "requiere_pago") or enlace is not None
    costo_raw = payload.get("costo_uf")
    costo = None if costo_raw in (None, "") else parse_amount(costo_raw, "costo_uf")
    if estado == StageEstado.COMPLETADO and requiere_pago:
        raise PreconditionError("pago_pendiente")
    responsable_id = _parse_optional_id(payload.get("responsable_id"), "responsable_id")
    if responsable_id is not None and not db.session.get(User, responsable_id):
        raise NotFoundError("usuario_no_encontrado")

    stage = CaseStage(
        case_id=case.id,
        etapa=etapa,
        descripcion=_text(payload, "descripcion"),
        orden=orden,
        estado=estado,
        es_publica=_parse_bool(payload.get("es_publica", True), "es_publica"),
        fecha_programada=_parse_iso_date(payload.get("fecha_programada"), "fecha_programada"),
        fecha_cumplida=utcnow() if estado == StageEstado.COMPLETADO else None,
        responsable_id=responsable_id or actor.id,
        requiere_pago=requiere_pago,
        costo_uf=costo,
        estado_pago=PagoEstado.PENDIENTE,
        enlace_pago=enlace,
        monto_pagado_uf=Decimal("0"),
        porcentaje_variable=parse_percentage(payload.get("porcentaje_variable"), "porcentaje_variable"),
        monto_variable_base=_text(payload, "monto_variable_base") or None,
        notas_pago=_text(payload, "notas_pago") or None,
    )
    db.session.add(stage)
    db.session.flush()
    log_audit("CREATE", "case_stage", stage.id, {"created": _snapshot(stage)}, actor.id)
    db.session.commit()
    logger.info("stage_created", stage_id=stage.id, case_id=case.id, actor_id=actor.id)
    return stage


def update_stage(stage_id: int, payload: dict, actor: User) -> CaseStage:
    """Apply a partial update; every field is validated before anything changes."""
    stage = stage_by_id(stage_id)
    _require_stage_editor(actor, stage, "sin_permisos_editar_etapa")
    _check_version(stage, payload.get("version"))

    changes: dict[str, object] = {}
    if "etapa" in payload:
        changes["etapa"] = _required_text(payload, "etapa", MAX_STAGE_NAME)
    if "descripcion" in payload:
        changes["descripcion"] = _text(payload, "descripcion")
    if "orden" in payload:
        changes["orden"] = _parse_orden(payload.get("orden"))
    if "es_publica" in payload:
        changes["es_publica"] = _parse_bool(payload.get("es_publica"), "es_publica")
    if "fecha_programada" in payload:
        changes["fecha_programada"] = _parse_iso_date(payload.get("fecha_programada"), "fecha_programada")
    if "responsable_id" in payload:
        responsable_id = _parse_optional_id(payload.get("responsable_id"), "responsable_id")
        if responsable_id is not None and not db.session.get(User, responsable_id):
            raise NotFoundError("usuario_no_encontrado")
        changes["responsable_id"] = responsable_id
    if "costo_uf" in payload:
        raw = payload.get("costo_uf")
        changes["costo_uf"] = None if raw in (None, "") else parse_amount(raw, "costo_uf")
    if "porcentaje_variable" in payload:
        changes["porcentaje_variable"] = parse_percentage(payload.get("porcentaje_variable"), "porcentaje_variable")
    if "monto_variable_base" in payload:
        changes["monto_variable_base"] = _text(payload, "monto_variable_base") or None
    if "notas_pago" in payload:
        changes["notas_pago"] = _text(payload, "notas_pago") or None
    if "observaciones" in payload:
        changes["observaciones"] = _text(payload, "observaciones")

    # Payment state only moves through the payment operations.
    if payload.get("estado_pago"):
        raise ValidationError("estado_pago_no_editable")

    state = StageState.of(stage)
    if "enlace_pago" in payload:
        enlace = validate_payment_link(payload.get("enlace_pago"))
        changes["enlace_pago"] = enlace
        if enlace:
            state = state.require_payment()
    if "costo_uf" in changes and changes["costo_uf"] != stage.costo_uf:
        state = state.reprice(Decimal(stage.monto_pagado_uf or 0), changes["costo_uf"])
    target_estado = (
        _parse_enum(StageEstado, payload.get("estado"), "estado") if payload.get("estado") else None
    )
    new_state = state.transition(estado=target_estado)

    before = _snapshot(stage)
    for key, value in changes.items():
        setattr(stage, key, value)
    completing = new_state.estado == StageEstado.COMPLETADO and stage.estado != StageEstado.COMPLETADO
    new_state.apply(stage)
    if completing:
        stage.fecha_cumplida = utcnow()
        _refresh_current_stage(stage.case, stage.id)
    log_audit("UPDATE", "case_stage", stage.id, {"from": before, "to": _snapshot(stage)}, actor.id)
    _commit()
    logger.info("stage_updated", stage_id=stage.id, fields=sorted(payload.keys()), actor_id=actor.id)
    return stage


def start_stage(stage_id: int, actor: User, version: object = None) -> CaseStage:
    stage = stage_by_id(stage_id)
    _require_stage_editor(actor, stage, "sin_permisos_editar_etapa")
    _check_version(stage, version)
    new_state = StageState.of(stage).transition(estado=StageEstado.EN_PROCESO)
    new_state.apply(stage)
    log_audit("UPDATE", "case_stage", stage.id, {"estado": stage.estado}, actor.id)
    _commit()
    return stage


def complete_stage(stage_id: int, actor: User, payload: dict | None = None) -> CaseStage:
    payload = payload or {}
    stage = stage_by_id(stage_id)
    _require_stage_editor(actor, stage, "sin_permisos_completar_etapa")
    _check_version(stage, payload.get("version"))
    fecha = _parse_datetime(payload.get("fecha_cumplida"), "fecha_cumplida")
    try:
        new_state = StageState.of(stage).transition(estado=StageEstado.COMPLETADO)
    except PreconditionError as exc:
        logger.info("stage_completion_refused", stage_id=stage.id, code=exc.code)
        raise

    new_state.apply(stage)
    stage.fecha_cumplida = fecha or utcnow()
    if "observaciones" in payload:
        stage.observaciones = _text(payload, "observaciones")
    _refresh_current_stage(stage.case, stage.id)
    log_audit(
        "COMPLETE",
        "case_stage",
        stage.id,
        {"completed": {"fecha_cumplida": stage.fecha_cumplida, "observaciones": stage.observaciones}},
        actor.id,
    )
    _commit()
    logger.info("stage_completed", stage_id=stage.id, case_id=stage.case_id, actor_id=actor.id)
    return stage


def delete_stage(stage_id: int, actor: User) -> None:
    # Siblings keep their generated dates and allocations.
    stage = stage_by_id(stage_id)
    _require_case_access(actor, stage.case)
    if actor.role != UserRole.ADMIN_FIRMA:
        raise PermissionDenied("sin_permisos_eliminar_etapa")
    snapshot = _snapshot(stage)
    case_id = stage.case_id
    db.session.delete(stage)
    log_audit("DELETE", "case_stage", stage_id, {"deleted": snapshot}, actor.id)
    _commit()
    logger.info("stage_deleted", stage_id=stage_id, case_id=case_id, actor_id=actor.id)


# -- reads -------------------------------------------------------------------


def list_stages(case_id: int, actor: User, filters: dict | None = None) -> StagePage:
    filters = filters or {}
    case = case_by_id(case_id)
    _require_case_access(actor, case)

    query = CaseStage.query.options(joinedload(CaseStage.responsable)).filter(CaseStage.case_id == case.id)
    if actor.role == UserRole.CLIENTE:
        query = query.filter(CaseStage.es_publica.is_(True))
        if case.advance_gate_active:
            query = query.filter(CaseStage.orden <= case.alcance_cliente_autorizado)

    if filters.get("estado"):
        query = query.filter(CaseStage.estado == _parse_enum(StageEstado, filters["estado"], "estado"))
    if filters.get("responsable_id"):
        query = query.filter(CaseStage.responsable_id == _parse_int(filters["responsable_id"], "responsable_id"))
    if filters.get("es_publica") not in (None, ""):
        query = query.filter(CaseStage.es_publica.is_(_parse_bool(filters["es_publica"], "es_publica")))
    fecha_desde = _parse_iso_date(filters.get("fecha_desde"), "fecha_desde")
    fecha_hasta = _parse_iso_date(filters.get("fecha_hasta"), "fecha_hasta")
    if fecha_desde:
        query = query.filter(CaseStage.fecha_programada >= fecha_desde)
    if fecha_hasta:
        query = query.filter(CaseStage.fecha_programada <= fecha_hasta)

    default_limit = current_app.config.get("STAGES_PAGE_SIZE", 20)
    max_limit = current_app.config.get("STAGES_MAX_PAGE_SIZE", 100)
    page = max(_parse_int(filters.get("page") or 1, "page"), 1)
    limit = min(max(_parse_int(filters.get("limit") or default_limit, "limit"), 1), max_limit)

    total = query.count()
    items = (
        query.order_by(CaseStage.orden.asc(), CaseStage.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return StagePage(items=items, total=total, page=page, limit=limit)


def get_stage(stage_id: int, actor: User) -> CaseStage:
    stage = stage_by_id(stage_id)
    _require_case_access(actor, stage.case)
    if actor.role == UserRole.CLIENTE and not client_can_see(stage, stage.case):
        raise PermissionDenied("sin_permisos_ver_etapa")
    return stage


# -- payments ----------------------------------------------------------------


def register_payment(stage_id: int, amount: object, actor: User, version: object = None) -> CaseStage:
    stage = stage_by_id(stage_id)
    _require_stage_editor(actor, stage, "sin_permisos_editar_etapa")
    _check_version(stage, version)
    value = parse_amount(amount, "monto")
    if not stage.requiere_pago:
        raise PreconditionError("etapa_sin_pago")
    if stage.costo_uf is None:
        raise PreconditionError("etapa_sin_costo")
    if stage.estado_pago == PagoEstado.PAGADO:
        raise PreconditionError("etapa_ya_pagada")

    paid = Decimal(stage.monto_pagado_uf or 0) + value
    target = payment_state_for(paid, Decimal(stage.costo_uf))
    new_state = StageState.of(stage).transition(estado_pago=target)

    previous = stage.monto_pagado_uf
    stage.monto_pagado_uf = paid
    new_state.apply(stage)
    log_audit(
        "PAYMENT",
        "case_stage",
        stage.id,
        {"monto": value, "monto_pagado_uf": {"from": previous, "to": paid}, "estado_pago": stage.estado_pago},
        actor.id,
    )
    _commit()
    logger.info(
        "payment_registered",
        stage_id=stage.id,
        amount=str(value),
        paid=str(paid),
        estado_pago=stage.estado_pago.value,
        actor_id=actor.id,
    )
    return stage


def mark_stage_paid(stage_id: int, actor: User, confirm: bool = False, version: object = None) -> CaseStage:
    stage = stage_by_id(stage_id)
    _require_stage_editor(actor, stage, "sin_permisos_editar_etapa")
    _check_version(stage, version)
    if not stage.requiere_pago:
        raise PreconditionError("etapa_sin_pago")
    if stage.estado_pago == PagoEstado.PAGADO:
        raise PreconditionError("etapa_ya_pagada")

    paid = Decimal(stage.monto_pagado_uf or 0)
    cost = Decimal(stage.costo_uf) if stage.costo_uf is not None else None
    if cost is not None and paid < cost and not confirm:
        raise PreconditionError("confirmacion_requerida", paid=paid, cost=cost)
    new_state = StageState.of(stage).transition(estado_pago=PagoEstado.PAGADO)

    if cost is not None:
        stage.monto_pagado_uf = max(paid, cost)
    new_state.apply(stage)
    log_audit(
        "PAYMENT",
        "case_stage",
        stage.id,
        {"marcada_pagada": True, "monto_pagado_uf": stage.monto_pagado_uf, "confirmado": confirm},
        actor.id,
    )
    _commit()
    logger.info("stage_marked_paid", stage_id=stage.id, confirmed=confirm, actor_id=actor.id)
    return stage


def request_payment(stage_id: int, actor: User) -> CaseStage:
    stage = stage_by_id(stage_id)
    _require_stage_editor(actor, stage, "sin_permisos_editar_etapa")
    new_state = StageState.of(stage).transition(estado_pago=PagoEstado.SOLICITADO)
    new_state.apply(stage)
    log_audit("PAYMENT", "case_stage", stage.id, {"estado_pago": stage.estado_pago}, actor.id)
    _commit()
    return stage


def set_payment_link(stage_id: int, url: object, actor: User) -> CaseStage:
    stage = stage_by_id(stage_id)
    _require_stage_editor(actor, stage, "sin_permisos_editar_etapa")
    enlace = validate_payment_link(url)
    state = StageState.of(stage)
    if enlace:
        state = state.require_payment()
    before = stage.enlace_pago
    stage.enlace_pago = enlace
    state.apply(stage)
    log_audit(
        "UPDATE",
        "case_stage",
        stage.id,
        {"enlace_pago": {"from": before, "to": enlace}, "requiere_pago": stage.requiere_pago},
        actor.id,
    )
    _commit()
    return stage


def mark_overdue_payments(today: date | None = None) -> int:
    today = today or date.today()
    overdue = (
        CaseStage.query.filter(CaseStage.requiere_pago.is_(True))
        .filter(CaseStage.estado != StageEstado.COMPLETADO)
        .filter(CaseStage.estado_pago.in_(OPEN_PAYMENT_STATES))
        .filter(CaseStage.fecha_programada.is_not(None))
        .filter(CaseStage.fecha_programada < today)
        .all()
    )
    for stage in overdue:
        StageState.of(stage).transition(estado_pago=PagoEstado.VENCIDO).apply(stage)
        log_audit("PAYMENT", "case_stage", stage.id, {"estado_pago": PagoEstado.VENCIDO}, None)
    _commit()
    logger.info("overdue_payments_marked", count=len(overdue), today=today.isoformat())
    return len(overdue)


# -- advance gate ------------------------------------------------------------


def _max_orden(case: Case) -> int:
    value = db.session.query(func.max(CaseStage.orden)).filter(CaseStage.case_id == case.id).scalar()
    return int(value or 0)


def request_advance(case_id: int, target: object, actor: User) -> Case:
    case = case_by_id(case_id)
    _require_case_access(actor, case)
    requested = _parse_int(target, "alcance")
    max_orden = _max_orden(case)
    if requested < 1 or requested > max_orden:
        raise ValidationError("avance_invalido", max=max_orden)
    before = case.alcance_cliente_solicitado
    case.alcance_cliente_solicitado = requested
    log_audit("ADVANCE_REQUEST", "case", case.id, {"from": before, "to": requested}, actor.id)
    db.session.commit()
    logger.info("advance_requested", case_id=case.id, target=requested, actor_id=actor.id)
    return case


def authorize_advance(case_id: int, target: object, actor: User) -> Case:
    case = case_by_id(case_id)
    _require_case_access(actor, case)
    if actor.role not in EDITOR_ROLES:
        raise PermissionDenied("sin_permisos_avance")
    authorized = _parse_int(target, "alcance")
    if authorized < 1:
        raise ValidationError("avance_invalido", max=_max_orden(case))
    requested = case.alcance_cliente_solicitado
    if requested is None:
        raise PreconditionError("avance_no_solicitado")
    if authorized > requested:
        logger.info("advance_authorization_refused", case_id=case.id, target=authorized, requested=requested)
        raise PreconditionError("avance_excede_solicitado", requested=requested)
    current = case.alcance_cliente_autorizado
    if current is not None and authorized < current:
        raise PreconditionError("avance_retrocede", current=current)
    case.alcance_cliente_autorizado = authorized
    log_audit("ADVANCE_AUTHORIZE", "case", case.id, {"from": current, "to": authorized}, actor.id)
    db.session.commit()
    logger.info("advance_authorized", case_id=case.id, target=authorized, actor_id=actor.id)
    return case


def set_authorized_advance(case_id: int, value: object, actor: User) -> Case:
    case = case_by_id(case_id)
    if actor.role != UserRole.ADMIN_FIRMA:
        raise PermissionDenied("sin_permisos_avance")
    new_value = None if value in (None, "") else _parse_int(value, "alcance")
    if new_value is not None and new_value < 0:
        raise ValidationError("valor_invalido", field="alcance")
    before = case.alcance_cliente_autorizado
    case.alcance_cliente_autorizado = new_value
    log_audit("ADVANCE_AUTHORIZE", "case", case.id, {"from": before, "to": new_value, "manual": True}, actor.id)
    db.session.commit()
    return case


# -- audit -------------------------------------------------------------------


def audit_history(entity_type: str, entity_id: int, actor: User) -> list[AuditLog]:
    if actor.role != UserRole.ADMIN_FIRMA:
        raise PermissionDenied("sin_permisos_auditoria")
    return (
        AuditLog.query.filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .all()
    )
