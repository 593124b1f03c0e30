"""Stage lifecycle and payment rules.

Pure functions over stage values; no session access. A stage carries two
interacting axes (procedural ``estado`` and ``estado_pago``) and every change
to either goes through ``StageState.transition`` so the payment gate is
enforced in one place.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from urllib.parse import urlparse

from app.core.errors import PreconditionError, ValidationError
from app.core.models import Case, CaseStage, PagoEstado, StageEstado
from app.core.utils import round_amount

STAGE_TRANSITIONS: dict[StageEstado, set[StageEstado]] = {
    StageEstado.PENDIENTE: {StageEstado.EN_PROCESO, StageEstado.COMPLETADO},
    StageEstado.EN_PROCESO: {StageEstado.PENDIENTE, StageEstado.COMPLETADO},
    StageEstado.COMPLETADO: set(),
}

PAYMENT_TRANSITIONS: dict[PagoEstado, set[PagoEstado]] = {
    PagoEstado.PENDIENTE: {
        PagoEstado.SOLICITADO,
        PagoEstado.EN_PROCESO,
        PagoEstado.PARCIAL,
        PagoEstado.PAGADO,
        PagoEstado.VENCIDO,
    },
    PagoEstado.SOLICITADO: {
        PagoEstado.EN_PROCESO,
        PagoEstado.PARCIAL,
        PagoEstado.PAGADO,
        PagoEstado.VENCIDO,
    },
    PagoEstado.EN_PROCESO: {PagoEstado.PARCIAL, PagoEstado.PAGADO, PagoEstado.VENCIDO},
    PagoEstado.PARCIAL: {PagoEstado.PARCIAL, PagoEstado.PAGADO, PagoEstado.VENCIDO},
    PagoEstado.VENCIDO: {
        PagoEstado.SOLICITADO,
        PagoEstado.EN_PROCESO,
        PagoEstado.PARCIAL,
        PagoEstado.PAGADO,
    },
    PagoEstado.PAGADO: set(),
}

OPEN_PAYMENT_STATES = (
    PagoEstado.PENDIENTE,
    PagoEstado.SOLICITADO,
    PagoEstado.EN_PROCESO,
    PagoEstado.PARCIAL,
)

MAX_LINK_LENGTH = 500


@dataclass(frozen=True)
class StageState:
    estado: StageEstado
    estado_pago: PagoEstado
    requiere_pago: bool

    @classmethod
    def of(cls, stage: CaseStage) -> StageState:
        return cls(
            estado=StageEstado(stage.estado),
            estado_pago=PagoEstado(stage.estado_pago),
            requiere_pago=bool(stage.requiere_pago),
        )

    def transition(
        self,
        estado: StageEstado | None = None,
        estado_pago: PagoEstado | None = None,
    ) -> StageState:
        """Validate a change on either axis and return the resulting state."""
        result = self
        if estado_pago is not None and estado_pago != self.estado_pago:
            if not self.requiere_pago:
                raise PreconditionError("etapa_sin_pago")
            if estado_pago not in PAYMENT_TRANSITIONS[self.estado_pago]:
                raise PreconditionError(
                    "transicion_pago_invalida",
                    current=self.estado_pago.value,
                    target=estado_pago.value,
                )
            result = replace(result, estado_pago=estado_pago)

        if estado is not None and estado != self.estado:
            if self.estado == StageEstado.COMPLETADO:
                raise PreconditionError("etapa_ya_completada")
            if estado not in STAGE_TRANSITIONS[self.estado]:
                raise PreconditionError(
                    "transicion_invalida",
                    current=self.estado.value,
                    target=estado.value,
                )
            if estado == StageEstado.COMPLETADO and result.requiere_pago and result.estado_pago != PagoEstado.PAGADO:
                raise PreconditionError("pago_pendiente")
            result = replace(result, estado=estado)
        elif estado == StageEstado.COMPLETADO and self.estado == StageEstado.COMPLETADO:
            raise PreconditionError("etapa_ya_completada")
        return result

    def require_payment(self) -> StageState:
        """Turn the payment axis on, as a payment link does."""
        if self.requiere_pago:
            return self
        if self.estado == StageEstado.COMPLETADO:
            raise PreconditionError("etapa_ya_completada")
        return replace(self, requiere_pago=True)

    def reprice(self, paid: Decimal, cost: Decimal | None) -> StageState:
        """Resolve the payment state after the stage cost changes."""
        if not self.requiere_pago:
            return self
        if self.estado_pago == PagoEstado.PAGADO:
            raise PreconditionError("etapa_ya_pagada")
        if cost is None or paid <= 0:
            return self
        return self.transition(estado_pago=payment_state_for(paid, cost))

    def apply(self, stage: CaseStage) -> None:
        stage.estado = self.estado
        stage.estado_pago = self.estado_pago
        stage.requiere_pago = self.requiere_pago


def payment_state_for(paid: Decimal, cost: Decimal) -> PagoEstado:
    if paid >= cost:
        return PagoEstado.PAGADO
    return PagoEstado.PARCIAL


def parse_amount(value: object, field_name: str) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError("monto_invalido", field=field_name)
    raw = str(value).strip().replace(",", ".")
    if not raw:
        raise ValidationError("campo_requerido", field=field_name)
    try:
        amount = Decimal(raw)
    except InvalidOperation as exc:
        raise ValidationError("monto_invalido", field=field_name) from exc
    if not amount.is_finite():
        raise ValidationError("monto_invalido", field=field_name)
    if amount < 0:
        raise ValidationError("monto_negativo", field=field_name)
    return round_amount(amount)


def parse_percentage(value: object, field_name: str) -> Decimal | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    amount = parse_amount(value, field_name)
    if amount > 100:
        raise ValidationError("porcentaje_invalido", field=field_name)
    return amount


def validate_payment_link(value: object) -> str | None:
    raw = (str(value) if value is not None else "").strip()
    if not raw:
        return None
    if len(raw) > MAX_LINK_LENGTH:
        raise ValidationError("texto_largo", field="enlace_pago", max=MAX_LINK_LENGTH)
    parsed = urlparse(raw)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValidationError("enlace_invalido")
    return raw


def client_can_see(stage: CaseStage, case: Case) -> bool:
    if not stage.es_publica:
        return False
    if case.advance_gate_active and stage.orden > case.alcance_cliente_autorizado:
        return False
    return True
