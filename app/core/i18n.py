from __future__ import annotations

from flask import has_request_context, session

SUPPORTED_LANGS = {"es", "en"}

I18N: dict[str, dict[str, str]] = {
    "stage.pendiente": {"es": "Pendiente", "en": "Pending"},
    "stage.en_proceso": {"es": "En proceso", "en": "In progress"},
    "stage.completado": {"es": "Completado", "en": "Completed"},
    "payment.pendiente": {"es": "Pago pendiente", "en": "Payment pending"},
    "payment.solicitado": {"es": "Pago solicitado", "en": "Payment requested"},
    "payment.en_proceso": {"es": "Pago en proceso", "en": "Payment in progress"},
    "payment.parcial": {"es": "Pago parcial", "en": "Partially paid"},
    "payment.pagado": {"es": "Pagado", "en": "Paid"},
    "payment.vencido": {"es": "Pago vencido", "en": "Payment overdue"},
    "error.caso_no_encontrado": {"es": "Caso no encontrado", "en": "Case not found"},
    "error.etapa_no_encontrada": {"es": "Etapa no encontrada", "en": "Stage not found"},
    "error.usuario_no_encontrado": {"es": "Usuario no encontrado", "en": "User not found"},
    "error.no_autenticado": {"es": "No autenticado", "en": "Not authenticated"},
    "error.sin_permisos_caso": {
        "es": "Sin permisos para acceder a este caso",
        "en": "Not allowed to access this case",
    },
    "error.sin_permisos_crear_caso": {
        "es": "Sin permisos para crear casos",
        "en": "Not allowed to create cases",
    },
    "error.sin_permisos_crear_etapa": {
        "es": "Sin permisos para crear etapas",
        "en": "Not allowed to create stages",
    },
    "error.sin_permisos_editar_etapa": {
        "es": "Sin permisos para editar etapas",
        "en": "Not allowed to edit stages",
    },
    "error.sin_permisos_completar_etapa": {
        "es": "Sin permisos para completar etapas",
        "en": "Not allowed to complete stages",
    },
    "error.sin_permisos_eliminar_etapa": {
        "es": "Sin permisos para eliminar etapas",
        "en": "Not allowed to delete stages",
    },
    "error.sin_permisos_ver_etapa": {
        "es": "Sin permisos para ver esta etapa",
        "en": "Not allowed to see this stage",
    },
    "error.sin_permisos_avance": {
        "es": "Solo el equipo del estudio puede autorizar avances",
        "en": "Only firm staff may authorize advances",
    },
    "error.sin_permisos_auditoria": {
        "es": "Sin permisos para ver auditoria",
        "en": "Not allowed to see the audit trail",
    },
    "error.solo_responsable_etapa": {
        "es": "Solo puedes modificar etapas de las que eres responsable",
        "en": "You may only change stages you are responsible for",
    },
    "error.campo_requerido": {"es": "Falta {field}", "en": "Missing {field}"},
    "error.valor_invalido": {
        "es": "Valor invalido para {field}",
        "en": "Invalid value for {field}",
    },
    "error.texto_largo": {
        "es": "{field} no puede exceder {max} caracteres",
        "en": "{field} cannot exceed {max} characters",
    },
    "error.fecha_invalida": {
        "es": "Formato de fecha invalido para {field}",
        "en": "Invalid date format for {field}",
    },
    "error.monto_invalido": {
        "es": "Importe invalido en {field}",
        "en": "Invalid amount in {field}",
    },
    "error.monto_negativo": {
        "es": "{field} no puede ser negativo",
        "en": "{field} cannot be negative",
    },
    "error.porcentaje_invalido": {
        "es": "{field} debe estar entre 0 y 100",
        "en": "{field} must be between 0 and 100",
    },
    "error.orden_invalido": {
        "es": "El orden debe ser un numero positivo",
        "en": "Order must be a positive number",
    },
    "error.enlace_invalido": {
        "es": "El enlace de pago debe ser una URL http(s) valida",
        "en": "The payment link must be a valid http(s) URL",
    },
    "error.pagado_supera_total": {
        "es": "El monto pagado no puede superar el honorario total",
        "en": "Paid amount cannot exceed the total fee",
    },
    "error.etapa_ya_completada": {
        "es": "La etapa ya esta completada",
        "en": "The stage is already completed",
    },
    "error.pago_pendiente": {
        "es": "La etapa requiere pago antes de completarse",
        "en": "The stage must be paid before it can be completed",
    },
    "error.transicion_invalida": {
        "es": "Transicion invalida: {current} -> {target}",
        "en": "Invalid transition: {current} -> {target}",
    },
    "error.transicion_pago_invalida": {
        "es": "Transicion de pago invalida: {current} -> {target}",
        "en": "Invalid payment transition: {current} -> {target}",
    },
    "error.etapa_sin_pago": {
        "es": "La etapa no requiere pago",
        "en": "The stage does not require payment",
    },
    "error.etapa_sin_costo": {
        "es": "La etapa no tiene costo asignado",
        "en": "The stage has no cost assigned",
    },
    "error.etapa_ya_pagada": {
        "es": "La etapa ya esta pagada",
        "en": "The stage is already paid",
    },
    "error.confirmacion_requerida": {
        "es": "El monto registrado ({paid}) es menor al costo ({cost}). Confirma para marcarla como pagada",
        "en": "Registered amount ({paid}) is below the cost ({cost}). Confirm to mark it as paid",
    },
    "error.etapas_ya_generadas": {
        "es": "Las etapas iniciales de este caso ya fueron generadas",
        "en": "Initial stages for this case were already generated",
    },
    "error.avance_invalido": {
        "es": "La etapa objetivo debe estar entre 1 y {max}",
        "en": "Target stage must be between 1 and {max}",
    },
    "error.avance_no_solicitado": {
        "es": "El cliente no ha solicitado avance",
        "en": "The client has not requested an advance",
    },
    "error.avance_excede_solicitado": {
        "es": "No se puede autorizar mas alla de lo solicitado ({requested})",
        "en": "Cannot authorize beyond the requested stage ({requested})",
    },
    "error.avance_retrocede": {
        "es": "El avance autorizado no puede retroceder (actual {current})",
        "en": "Authorized advance cannot move backwards (current {current})",
    },
    "error.cliente_invalido": {
        "es": "El usuario indicado no es un cliente",
        "en": "The given user is not a client",
    },
    "error.version_conflicto": {
        "es": "La etapa fue modificada por otra persona. Recarga e intenta nuevamente",
        "en": "The stage was changed by someone else. Reload and try again",
    },
    "error.estado_pago_no_editable": {
        "es": "El estado de pago solo cambia registrando pagos o solicitudes de pago",
        "en": "Payment state only changes through payment registration or requests",
    },
    "error.campo_no_editable": {
        "es": "{field} no se puede modificar una vez generadas las etapas",
        "en": "{field} cannot change once stages are generated",
    },
    "error.sin_permisos_editar_caso": {
        "es": "Sin permisos para editar este caso",
        "en": "Not allowed to edit this case",
    },
    "error.sin_permisos_asignar_abogado": {
        "es": "Solo administradores pueden asignar abogados",
        "en": "Only administrators may assign lawyers",
    },
    "error.credenciales_invalidas": {"es": "Credenciales invalidas", "en": "Invalid credentials"},
    "error.no_encontrado": {"es": "Recurso no encontrado", "en": "Resource not found"},
    "error.sin_permisos": {"es": "Sin permisos", "en": "Forbidden"},
}


def get_locale() -> str:
    if not has_request_context():
        return "es"
    lang = session.get("lang", "es")
    if lang not in SUPPORTED_LANGS:
        return "es"
    return lang


def translate(key: str) -> str:
    lang = get_locale()
    return I18N.get(key, {}).get(lang, key)
