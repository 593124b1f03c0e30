"""Canonical procedural stages per legal matter.

Each matter maps to an ordered list of stage templates. Fee shares live in a
separate position-indexed table so a matter can reuse another matter's stages
or distribution independently.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal

DEFAULT_MATTER = "civil"


@dataclass(frozen=True)
class StageTemplate:
    etapa: str
    descripcion: str
    dias_estimados: int
    es_publica: bool = True
    porcentaje_honorario: Decimal = Decimal("0")
    porcentaje_variable: Decimal | None = None
    notas_pago: str | None = None


def _t(etapa: str, descripcion: str, dias: int, **extra) -> StageTemplate:
    return StageTemplate(etapa=etapa, descripcion=descripcion, dias_estimados=dias, **extra)


STAGE_TEMPLATES: dict[str, tuple[StageTemplate, ...]] = {
    "civil": (
        _t("Ingreso Demanda", "Redaccion y presentacion de la demanda ante el tribunal", 0),
        _t("Notificación Demandado", "Gestiones de notificacion personal o por cedula", 30),
        _t("Contestación Demanda", "Plazo de contestacion y eventuales excepciones", 20),
        _t("Dúplica", "Replica y duplica de las partes", 15),
        _t("Audiencia Preparatoria", "Conciliacion y fijacion de hechos a probar", 30),
        _t("Audiencia de Juicio", "Rendicion de prueba y alegatos", 45),
        _t(
            "Sentencia",
            "Dictacion y notificacion de la sentencia definitiva",
            20,
            porcentaje_variable=Decimal("10"),
            notas_pago="10% de lo obtenido con la demanda o lo ahorrado por la defensa",
        ),
        _t("Recurso de Apelación", "Tramitacion de recursos ante la Corte de Apelaciones", 60),
        _t("Cumplimiento Sentencia", "Ejecucion de lo resuelto", 30),
    ),
    "laboral": (
        _t("Ingreso Demanda", "Presentacion de la demanda laboral", 0),
        _t("Notificación Empleador", "Notificacion de la demanda al empleador", 15),
        _t("Contestación", "Contestacion de la demanda por el empleador", 20),
        _t("Audiencia Preparatoria", "Audiencia preparatoria y ofrecimiento de prueba", 15),
        _t("Audiencia de Juicio", "Rendicion de prueba y observaciones", 30),
        _t(
            "Sentencia",
            "Notificacion de la sentencia",
            15,
            porcentaje_variable=Decimal("15"),
            notas_pago="15% de lo obtenido en juicio",
        ),
        _t("Recurso de Nulidad", "Recurso de nulidad ante la Corte", 30),
        _t("Cumplimiento", "Cobro de las prestaciones ordenadas", 30),
    ),
    "penal": (
        _t("Denuncia/Querella", "Presentacion de denuncia o querella", 0),
        _t("Formalización", "Audiencia de formalizacion de la investigacion", 30),
        _t("Investigación", "Diligencias de investigacion del Ministerio Publico", 90),
        _t("Audiencia Preparatoria", "Preparacion del juicio oral", 30),
        _t("Juicio Oral", "Juicio oral ante el tribunal", 45),
        _t("Sentencia", "Lectura de sentencia", 15),
        _t("Recurso de Apelación", "Recursos contra la sentencia", 30),
        _t("Cumplimiento", "Cumplimiento de la pena o de lo resuelto", 30),
    ),
    "familia": (
        _t("Ingreso Demanda", "Presentacion de la demanda ante el Juzgado de Familia", 0),
        _t("Notificación", "Notificacion de la contraparte", 15),
        _t("Contestación", "Contestacion de la demanda", 15),
        _t("Audiencia Preparatoria", "Audiencia preparatoria y mediacion", 30),
        _t("Audiencia de Juicio", "Audiencia de juicio", 45),
        _t("Sentencia", "Sentencia definitiva", 20),
        _t("Cumplimiento", "Cumplimiento de lo resuelto", 30),
    ),
    "comercial": (
        _t("Estudio de Antecedentes", "Revision interna de contratos y garantias", 0, es_publica=False),
        _t("Ingreso Demanda", "Presentacion de la demanda o gestion preparatoria", 10),
        _t("Notificación", "Notificacion y requerimiento de pago", 20),
        _t("Contestación", "Excepciones u oposicion del deudor", 15),
        _t("Audiencia", "Prueba y discusion", 30),
        _t("Sentencia", "Sentencia y cobro", 45),
    ),
}

FEE_DISTRIBUTIONS: dict[str, tuple[Decimal, ...]] = {
    "civil": tuple(Decimal(v) for v in ("0.15", "0.10", "0.10", "0.10", "0.15", "0.20", "0.10", "0.05", "0.05")),
    "laboral": tuple(Decimal(v) for v in ("0.20", "0.10", "0.10", "0.15", "0.20", "0.10", "0.10", "0.05")),
    "penal": tuple(Decimal(v) for v in ("0.15", "0.10", "0.20", "0.10", "0.20", "0.10", "0.10", "0.05")),
    "familia": tuple(Decimal(v) for v in ("0.20", "0.10", "0.10", "0.20", "0.20", "0.10", "0.10")),
}


def normalize_matter(matter: str | None) -> str:
    key = (matter or "").strip().lower()
    if key not in STAGE_TEMPLATES:
        return DEFAULT_MATTER
    return key


def fee_distribution_for(matter: str | None) -> tuple[Decimal, ...]:
    key = normalize_matter(matter)
    return FEE_DISTRIBUTIONS.get(key, FEE_DISTRIBUTIONS[DEFAULT_MATTER])


def get_templates_for_matter(matter: str | None) -> list[StageTemplate]:
    """Ordered stage templates for a matter with fee shares attached.

    Unknown, empty or missing matters fall back to the Civil list. Positions
    past the end of the distribution table get a share of zero.
    """
    key = normalize_matter(matter)
    distribution = fee_distribution_for(key)
    templates: list[StageTemplate] = []
    for index, template in enumerate(STAGE_TEMPLATES[key]):
        share = distribution[index] if index < len(distribution) else Decimal("0")
        templates.append(replace(template, porcentaje_honorario=share))
    return templates


def available_matters() -> list[str]:
    return [key.capitalize() for key in STAGE_TEMPLATES]
