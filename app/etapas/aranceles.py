"""Firm fee schedule used to resolve a case total from a reference id."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class FeeScale:
    condicion: str
    monto_uf: Decimal | None = None
    porcentaje: Decimal | None = None
    porcentaje_sobre: str | None = None
    minimo_uf: Decimal | None = None


@dataclass(frozen=True)
class FeeItem:
    id: str
    nombre: str
    monto_uf: Decimal | None = None
    porcentaje: Decimal | None = None
    porcentaje_sobre: str | None = None
    minimo_uf: Decimal | None = None
    notas: str | None = None
    escalas: tuple[FeeScale, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FeeCategory:
    codigo: str
    titulo: str
    items: tuple[FeeItem, ...]


_OBTENIDO = "lo obtenido con la demanda o lo ahorrado por la defensa"

FEE_CATEGORIES: tuple[FeeCategory, ...] = (
    FeeCategory(
        "consulta",
        "Honorarios Profesionales - Consulta",
        (
            FeeItem(
                "consulta_atencion_personal",
                "Consulta profesional (atención personal)",
                monto_uf=Decimal("1"),
                notas="Se descuenta del honorario final si el cliente contrata el servicio asociado.",
            ),
            FeeItem(
                "consulta_informe_escrito",
                "Consulta con estudio documental e informe escrito",
                monto_uf=Decimal("2"),
            ),
        ),
    ),
    FeeCategory(
        "constitucional",
        "Materias Constitucionales",
        (
            FeeItem("recurso_proteccion", "Recurso de protección", monto_uf=Decimal("30"), notas="40 UF si se tramita apelación."),
            FeeItem("recurso_amparo", "Recurso de amparo", monto_uf=Decimal("15"), notas="20 UF si se tramita apelación."),
        ),
    ),
    FeeCategory(
        "civil",
        "Materias Civiles",
        (
            FeeItem(
                "medidas_prejudiciales",
                "Medidas prejudiciales",
                escalas=(
                    FeeScale("Si con la medida se resuelve el conflicto", monto_uf=Decimal("15")),
                    FeeScale("En caso contrario", monto_uf=Decimal("5")),
                ),
            ),
            FeeItem(
                "juicio_ordinario_mayor_cuantia",
                "Juicio ordinario de mayor cuantía",
                monto_uf=Decimal("30"),
                porcentaje=Decimal("10"),
                porcentaje_sobre=_OBTENIDO,
            ),
            FeeItem(
                "juicio_ordinario_menor_cuantia",
                "Juicio ordinario de menor cuantía",
                monto_uf=Decimal("20"),
                porcentaje=Decimal("10"),
                porcentaje_sobre=_OBTENIDO,
            ),
            FeeItem(
                "juicio_ejecutivo",
                "Juicio ejecutivo (principal o incidental)",
                monto_uf=Decimal("20"),
                porcentaje=Decimal("10"),
                porcentaje_sobre=_OBTENIDO,
            ),
            FeeItem("juicio_sumario", "Juicio sumario", monto_uf=Decimal("20"), porcentaje=Decimal("10")),
            FeeItem(
                "juicio_arrendamiento",
                "Juicio especial de arrendamiento",
                escalas=(
                    FeeScale("Deuda hasta 50 UF", monto_uf=Decimal("10")),
                    FeeScale("Deuda entre 51 y 100 UF", monto_uf=Decimal("15")),
                    FeeScale("Deuda superior a 100 UF", monto_uf=Decimal("20")),
                ),
            ),
            FeeItem("posesion_efectiva_judicial", "Posesión efectiva judicial", monto_uf=Decimal("20")),
            FeeItem("cambio_nombre", "Cambio de nombre", monto_uf=Decimal("20")),
        ),
    ),
    FeeCategory(
        "laboral",
        "Materias Laborales",
        (
            FeeItem("juicio_laboral_ordinario", "Juicio laboral ordinario", monto_uf=Decimal("25"), porcentaje=Decimal("15")),
            FeeItem("juicio_laboral_monitorio", "Juicio laboral monitorio", monto_uf=Decimal("15")),
            FeeItem("desafuero", "Desafuero", monto_uf=Decimal("25")),
        ),
    ),
    FeeCategory(
        "familia",
        "Materias de Familia",
        (
            FeeItem("cuidado_personal", "Cuidado personal", monto_uf=Decimal("25")),
            FeeItem("alimentos", "Alimentos", monto_uf=Decimal("15")),
            FeeItem("divorcio_cese_convivencia", "Divorcio por cese de convivencia", monto_uf=Decimal("30")),
        ),
    ),
    FeeCategory(
        "penal",
        "Materias Penales",
        (
            FeeItem("defensa_ordinario", "Defensa en procedimiento ordinario", monto_uf=Decimal("80")),
            FeeItem("querella_simplificado", "Querella en procedimiento simplificado", monto_uf=Decimal("15")),
            FeeItem(
                "demanda_civil_penal",
                "Demanda civil en sede penal",
                porcentaje=Decimal("10"),
                porcentaje_sobre="de lo obtenido",
                minimo_uf=Decimal("15"),
            ),
        ),
    ),
    FeeCategory(
        "recursos",
        "Recursos",
        (
            FeeItem("nulidad_penal", "Recurso de nulidad penal", monto_uf=Decimal("50")),
            FeeItem("inaplicabilidad", "Recurso de inaplicabilidad", monto_uf=Decimal("30")),
            FeeItem("revision", "Recurso de revisión", monto_uf=Decimal("50")),
        ),
    ),
)

_SLUG_RE = re.compile(r"[^a-z0-9]+")


def _slug(value: str) -> str:
    decomposed = unicodedata.normalize("NFKD", value)
    ascii_only = "".join(char for char in decomposed if not unicodedata.combining(char))
    return _SLUG_RE.sub("_", ascii_only.lower()).strip("_")


def find_fee_item(item_id: str | None) -> FeeItem | None:
    if not item_id:
        return None
    normalized = item_id.strip().lower()
    slug = _slug(normalized)
    for category in FEE_CATEGORIES:
        for item in category.items:
            if item.id in (normalized, slug) or _slug(item.nombre) == slug:
                return item
    return None


def fee_total_for(item_id: str | None) -> Decimal | None:
    item = find_fee_item(item_id)
    if item is None:
        return None
    return item.monto_uf
