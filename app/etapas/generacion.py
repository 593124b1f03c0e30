from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

import structlog
from flask import current_app, has_app_context
from sqlalchemy import update

from app.core.audit import log_audit
from app.core.errors import PreconditionError
from app.core.extensions import db
from app.core.models import Case, CaseStage, PagoEstado, StageEstado
from app.core.utils import round_amount
from app.etapas.aranceles import fee_total_for
from app.etapas.plantillas import get_templates_for_matter

logger = structlog.get_logger(__name__)


@dataclass
class PlannedStage:
    orden: int
    etapa: str
    descripcion: str
    es_publica: bool
    fecha_programada: date
    requiere_pago: bool
    costo_uf: Decimal | None
    porcentaje_variable: Decimal | None
    notas_pago: str | None
    monto_variable_base: str | None


def _setting(key: str, default: str) -> str:
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def _as_date(value: date | datetime | None) -> date:
    if value is None:
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    return value


def _enum_value(value: object) -> str:
    return str(getattr(value, "value", value) or "")


def resolve_fee_total(explicit_total: Decimal | None, fee_reference: str | None) -> Decimal | None:
    if explicit_total is not None:
        return Decimal(explicit_total)
    return fee_total_for(fee_reference)


def distributes_costs(
    fee_mode: object,
    fee_currency: object,
    fee_total: Decimal | None,
    reference_currency: str = "UF",
    prepaid_mode: str = "prepago",
) -> bool:
    return (
        _enum_value(fee_mode) == prepaid_mode
        and _enum_value(fee_currency) == reference_currency
        and fee_total is not None
    )


def plan_initial_stages(
    matter: str | None,
    start_date: date | datetime | None,
    fee_total: Decimal | None,
    fee_currency: object,
    fee_mode: object,
    *,
    reference_currency: str = "UF",
    prepaid_mode: str = "prepago",
    variable_base: str | None = None,
) -> list[PlannedStage]:
    """Lay out the ordered stages for a new case.

    Scheduled dates accumulate each template's ``dias_estimados`` onto a running
    offset from the start date, the first stage included. When the case is
    prepaid in the reference currency with a known total, every template with a
    positive share gets ``round(total * share, 2)`` and the last stage takes
    whatever remains, so the allocations always add up to the total.
    """
    templates = get_templates_for_matter(matter)
    start = _as_date(start_date)
    distribute = distributes_costs(fee_mode, fee_currency, fee_total, reference_currency, prepaid_mode)
    total = Decimal(fee_total) if distribute else Decimal("0")

    planned: list[PlannedStage] = []
    allocated = Decimal("0")
    cumulative_days = 0
    last_index = len(templates) - 1
    for index, template in enumerate(templates):
        cumulative_days += template.dias_estimados

        costo: Decimal | None = None
        requiere_pago = False
        if distribute:
            if index == last_index:
                costo = round_amount(total - allocated)
                requiere_pago = costo > 0
            elif template.porcentaje_honorario > 0:
                costo = round_amount(total * template.porcentaje_honorario)
                allocated += costo
                requiere_pago = True

        planned.append(
            PlannedStage(
                orden=index + 1,
                etapa=template.etapa,
                descripcion=template.descripcion,
                es_publica=template.es_publica,
                fecha_programada=start + timedelta(days=cumulative_days),
                requiere_pago=requiere_pago,
                costo_uf=costo,
                porcentaje_variable=template.porcentaje_variable,
                notas_pago=template.notas_pago,
                monto_variable_base=variable_base if template.porcentaje_variable is not None else None,
            )
        )
    return planned


def plan_for_case(case: Case) -> list[PlannedStage]:
    return plan_initial_stages(
        case.materia,
        case.fecha_inicio,
        resolve_fee_total(case.honorario_total_uf, case.tarifa_referencia),
        case.honorario_moneda,
        case.modalidad_cobro,
        reference_currency=_setting("REFERENCE_CURRENCY", "UF"),
        prepaid_mode=_setting("PREPAID_MODE", "prepago"),
        variable_base=case.honorario_variable_base,
    )


def generate_initial_stages(case: Case, actor_id: int | None = None, commit: bool = True) -> list[CaseStage]:
    """Create the case's stage set exactly once.

    The ``etapas_generadas`` flag is flipped with a conditional UPDATE before
    any row is inserted; a second call for the same case finds no row to flip
    and is refused.
    """
    flipped = db.session.execute(
        update(Case)
        .where(Case.id == case.id, Case.etapas_generadas.is_(False))
        .values(etapas_generadas=True)
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount != 1:
        logger.info("stages_generation_refused", case_id=case.id)
        raise PreconditionError("etapas_ya_generadas")
    case.etapas_generadas = True

    planned = plan_for_case(case)
    stages = [
        CaseStage(
            case_id=case.id,
            orden=item.orden,
            etapa=item.etapa,
            descripcion=item.descripcion,
            es_publica=item.es_publica,
            fecha_programada=item.fecha_programada,
            estado=StageEstado.PENDIENTE,
            estado_pago=PagoEstado.PENDIENTE,
            requiere_pago=item.requiere_pago,
            costo_uf=item.costo_uf,
            monto_pagado_uf=Decimal("0"),
            porcentaje_variable=item.porcentaje_variable,
            notas_pago=item.notas_pago,
            monto_variable_base=item.monto_variable_base,
            responsable_id=None,
            fecha_cumplida=None,
        )
        for item in planned
    ]
    if stages:
        db.session.add_all(stages)
        case.etapa_actual = stages[0].etapa
    log_audit(
        "GENERATE_STAGES",
        "case",
        case.id,
        {"etapas": [s.etapa for s in stages], "costos": [s.costo_uf for s in stages]},
        actor_id,
    )
    if commit:
        db.session.commit()
    logger.info(
        "stages_generated",
        case_id=case.id,
        materia=case.materia,
        count=len(stages),
        con_pago=sum(1 for s in stages if s.requiere_pago),
    )
    return stages
