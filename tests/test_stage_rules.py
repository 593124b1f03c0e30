from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

import pytest

from app.core.errors import PreconditionError, ValidationError
from app.core.models import HonorarioMoneda, ModalidadCobro, PagoEstado, StageEstado
from app.etapas.aranceles import fee_total_for, find_fee_item
from app.etapas.generacion import plan_initial_stages
from app.etapas.plantillas import FEE_DISTRIBUTIONS, STAGE_TEMPLATES, fee_distribution_for, get_templates_for_matter
from app.etapas.reglas import StageState, parse_amount, parse_percentage, validate_payment_link


def _civil_plan(total="100", currency=HonorarioMoneda.UF, mode=ModalidadCobro.PREPAGO):
    return plan_initial_stages(
        "Civil",
        date(2024, 1, 1),
        Decimal(total) if total is not None else None,
        currency,
        mode,
    )


def test_distribution_tables_sum_to_one():
    for matter, shares in FEE_DISTRIBUTIONS.items():
        assert sum(shares) == Decimal("1"), matter
        assert len(shares) == len(STAGE_TEMPLATES[matter])


def test_unknown_matter_falls_back_to_civil():
    civil = [t.etapa for t in get_templates_for_matter("Civil")]
    assert [t.etapa for t in get_templates_for_matter("Tributario")] == civil
    assert [t.etapa for t in get_templates_for_matter("")] == civil
    assert [t.etapa for t in get_templates_for_matter(None)] == civil


def test_matter_without_distribution_uses_civil_shares():
    assert fee_distribution_for("Comercial") == FEE_DISTRIBUTIONS["civil"]
    templates = get_templates_for_matter("comercial")
    assert templates[0].es_publica is False
    assert [t.porcentaje_honorario for t in templates] == list(FEE_DISTRIBUTIONS["civil"][: len(templates)])


def test_civil_prepaid_plan_matches_reference_scenario():
    plan = _civil_plan()

    assert len(plan) == 9
    assert [p.orden for p in plan] == list(range(1, 10))
    assert plan[0].costo_uf == Decimal("15.00")
    assert plan[0].fecha_programada == date(2024, 1, 1)
    assert plan[1].costo_uf == Decimal("10.00")
    assert plan[1].fecha_programada == date(2024, 1, 31)
    assert plan[-1].costo_uf == Decimal("5.00")
    assert plan[-1].fecha_programada == date(2024, 1, 1) + timedelta(days=250)
    assert all(p.requiere_pago for p in plan)


def test_allocations_always_add_up_to_total():
    for total in ("100", "33.33", "0.07", "1234.56", "7"):
        plan = _civil_plan(total)
        assert sum(p.costo_uf for p in plan) == Decimal(total)


def test_scheduled_dates_never_decrease():
    for matter in ("Civil", "Laboral", "Penal", "Familia", "Comercial"):
        plan = plan_initial_stages(matter, date(2024, 5, 10), None, HonorarioMoneda.UF, ModalidadCobro.PREPAGO)
        dates = [p.fecha_programada for p in plan]
        assert dates == sorted(dates)
        assert dates[0] >= date(2024, 5, 10)


def test_plan_is_deterministic():
    assert _civil_plan("87.5") == _civil_plan("87.5")


@pytest.mark.parametrize(
    "total,currency,mode",
    [
        ("100", HonorarioMoneda.CLP, ModalidadCobro.PREPAGO),
        ("100", HonorarioMoneda.UF, ModalidadCobro.POSTPAGO),
        (None, HonorarioMoneda.UF, ModalidadCobro.PREPAGO),
    ],
)
def test_no_costs_outside_prepaid_reference_currency(total, currency, mode):
    plan = _civil_plan(total, currency, mode)
    assert all(p.costo_uf is None for p in plan)
    assert not any(p.requiere_pago for p in plan)


def test_zero_total_leaves_last_stage_without_payment():
    plan = _civil_plan("0")
    assert plan[-1].costo_uf == Decimal("0.00")
    assert plan[-1].requiere_pago is False


def test_variable_fee_details_come_from_template():
    plan = plan_initial_stages(
        "Civil",
        date(2024, 1, 1),
        Decimal("100"),
        HonorarioMoneda.UF,
        ModalidadCobro.PREPAGO,
        variable_base="Monto demandado",
    )
    sentencia = next(p for p in plan if p.etapa == "Sentencia")
    assert sentencia.porcentaje_variable == Decimal("10")
    assert sentencia.monto_variable_base == "Monto demandado"
    assert plan[0].monto_variable_base is None


def test_cannot_complete_stage_with_pending_payment():
    state = StageState(StageEstado.EN_PROCESO, PagoEstado.PARCIAL, True)
    with pytest.raises(PreconditionError) as excinfo:
        state.transition(estado=StageEstado.COMPLETADO)
    assert excinfo.value.code == "pago_pendiente"

    paid = state.transition(estado_pago=PagoEstado.PAGADO)
    assert paid.transition(estado=StageEstado.COMPLETADO).estado == StageEstado.COMPLETADO


def test_stage_without_payment_completes_directly():
    state = StageState(StageEstado.PENDIENTE, PagoEstado.PENDIENTE, False)
    assert state.transition(estado=StageEstado.COMPLETADO).estado == StageEstado.COMPLETADO
    with pytest.raises(PreconditionError) as excinfo:
        state.transition(estado_pago=PagoEstado.PAGADO)
    assert excinfo.value.code == "etapa_sin_pago"


def test_completed_stage_is_terminal():
    state = StageState(StageEstado.COMPLETADO, PagoEstado.PAGADO, True)
    for target in (StageEstado.PENDIENTE, StageEstado.EN_PROCESO, StageEstado.COMPLETADO):
        with pytest.raises(PreconditionError) as excinfo:
            state.transition(estado=target)
        assert excinfo.value.code == "etapa_ya_completada"


def test_paid_is_terminal_for_payment_axis():
    state = StageState(StageEstado.PENDIENTE, PagoEstado.PAGADO, True)
    with pytest.raises(PreconditionError) as excinfo:
        state.transition(estado_pago=PagoEstado.PARCIAL)
    assert excinfo.value.code == "transicion_pago_invalida"


def test_payment_link_cannot_reopen_completed_stage():
    completed = StageState(StageEstado.COMPLETADO, PagoEstado.PENDIENTE, False)
    with pytest.raises(PreconditionError) as excinfo:
        completed.require_payment()
    assert excinfo.value.code == "etapa_ya_completada"

    open_stage = StageState(StageEstado.EN_PROCESO, PagoEstado.PENDIENTE, False)
    assert open_stage.require_payment().requiere_pago is True
    paid = StageState(StageEstado.COMPLETADO, PagoEstado.PAGADO, True)
    assert paid.require_payment() is paid


def test_reprice_follows_registered_amount():
    state = StageState(StageEstado.EN_PROCESO, PagoEstado.PARCIAL, True)
    assert state.reprice(Decimal("10"), Decimal("5")).estado_pago == PagoEstado.PAGADO
    assert state.reprice(Decimal("10"), Decimal("20")).estado_pago == PagoEstado.PARCIAL
    assert state.reprice(Decimal("0"), Decimal("5")) == state

    with pytest.raises(PreconditionError) as excinfo:
        StageState(StageEstado.PENDIENTE, PagoEstado.PAGADO, True).reprice(Decimal("5"), Decimal("8"))
    assert excinfo.value.code == "etapa_ya_pagada"


@pytest.mark.parametrize("value,expected", [("10", "10.00"), ("2,5", "2.50"), (0, "0.00"), ("1.005", "1.01")])
def test_parse_amount_accepts_numbers(value, expected):
    assert parse_amount(value, "monto") == Decimal(expected)


@pytest.mark.parametrize("value,code", [("-1", "monto_negativo"), ("abc", "monto_invalido"), ("", "campo_requerido"), ("NaN", "monto_invalido")])
def test_parse_amount_rejects_bad_input(value, code):
    with pytest.raises(ValidationError) as excinfo:
        parse_amount(value, "monto")
    assert excinfo.value.code == code


def test_percentage_bounds():
    assert parse_percentage("", "porcentaje_variable") is None
    assert parse_percentage("15", "porcentaje_variable") == Decimal("15.00")
    with pytest.raises(ValidationError):
        parse_percentage("101", "porcentaje_variable")


def test_payment_link_validation():
    assert validate_payment_link("  ") is None
    assert validate_payment_link("https://pagos.example.cl/x") == "https://pagos.example.cl/x"
    with pytest.raises(ValidationError) as excinfo:
        validate_payment_link("ftp://pagos.example.cl")
    assert excinfo.value.code == "enlace_invalido"
    with pytest.raises(ValidationError) as excinfo:
        validate_payment_link("https://example.cl/" + "a" * 500)
    assert excinfo.value.code == "texto_largo"


def test_fee_schedule_lookup_by_id_and_name():
    assert fee_total_for("recurso_proteccion") == Decimal("30")
    assert find_fee_item("Juicio ordinario de mayor cuantía").id == "juicio_ordinario_mayor_cuantia"
    assert fee_total_for("medidas_prejudiciales") is None
    assert fee_total_for("no_existe") is None


def test_fee_schedule_lookup_ignores_accents():
    expected = "consulta_atencion_personal"
    assert find_fee_item("Consulta profesional (atencion personal)").id == expected
    assert find_fee_item("Consulta profesional (atención personal)").id == expected
    assert find_fee_item("JUICIO ORDINARIO DE MAYOR CUANTIA").id == "juicio_ordinario_mayor_cuantia"
