from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum

from flask_login import UserMixin
from sqlalchemy import JSON, CheckConstraint, Enum as SAEnum, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import generate_password_hash

from app.core.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRole(str, Enum):
    ADMIN_FIRMA = "admin_firma"
    ABOGADO = "abogado"
    ANALISTA = "analista"
    CLIENTE = "cliente"


EDITOR_ROLES = {UserRole.ADMIN_FIRMA, UserRole.ABOGADO}


class CaseEstado(str, Enum):
    ACTIVO = "activo"
    SUSPENDIDO = "suspendido"
    ARCHIVADO = "archivado"
    TERMINADO = "terminado"


class HonorarioMoneda(str, Enum):
    UF = "UF"
    CLP = "CLP"
    USD = "USD"


class ModalidadCobro(str, Enum):
    PREPAGO = "prepago"
    POSTPAGO = "postpago"
    MIXTO = "mixto"


class StageEstado(str, Enum):
    PENDIENTE = "pendiente"
    EN_PROCESO = "en_proceso"
    COMPLETADO = "completado"


class PagoEstado(str, Enum):
    PENDIENTE = "pendiente"
    SOLICITADO = "solicitado"
    EN_PROCESO = "en_proceso"
    PARCIAL = "parcial"
    PAGADO = "pagado"
    VENCIDO = "vencido"


class User(UserMixin, db.Model):
    __tablename__ = "user_account"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    nombre: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=UserRole.ABOGADO,
    )
    is_active: Mapped[bool] = mapped_column(default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)


class Case(db.Model):
    __tablename__ = "legal_case"
    __table_args__ = (
        CheckConstraint(
            "honorario_total_uf IS NULL OR honorario_total_uf >= 0",
            name="ck_case_honorario_total",
        ),
        Index("ix_case_abogado_estado", "abogado_responsable_id", "estado"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    numero_causa: Mapped[str] = mapped_column(db.String(60), nullable=False, default="")
    caratulado: Mapped[str] = mapped_column(db.String(500), nullable=False)
    materia: Mapped[str] = mapped_column(db.String(100), nullable=False)
    tribunal: Mapped[str] = mapped_column(db.String(200), nullable=False, default="")
    nombre_cliente: Mapped[str] = mapped_column(db.String(200), nullable=False)
    estado: Mapped[CaseEstado] = mapped_column(
        SAEnum(CaseEstado, name="case_estado", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=CaseEstado.ACTIVO,
    )
    etapa_actual: Mapped[str] = mapped_column(db.String(100), nullable=False, default="")
    fecha_inicio: Mapped[date] = mapped_column(nullable=False)
    abogado_responsable_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)

    honorario_total_uf: Mapped[Decimal | None] = mapped_column(db.Numeric(12, 2), nullable=True)
    honorario_moneda: Mapped[HonorarioMoneda] = mapped_column(
        SAEnum(HonorarioMoneda, name="honorario_moneda"),
        nullable=False,
        default=HonorarioMoneda.UF,
    )
    modalidad_cobro: Mapped[ModalidadCobro] = mapped_column(
        SAEnum(ModalidadCobro, name="modalidad_cobro", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=ModalidadCobro.PREPAGO,
    )
    tarifa_referencia: Mapped[str | None] = mapped_column(db.String(200), nullable=True)
    honorario_variable_porcentaje: Mapped[Decimal | None] = mapped_column(db.Numeric(5, 2), nullable=True)
    honorario_variable_base: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)
    honorario_notas: Mapped[str] = mapped_column(db.Text, nullable=False, default="")

    # Advance gate: orden values of case_stage rows.
    alcance_cliente_solicitado: Mapped[int | None] = mapped_column(nullable=True)
    alcance_cliente_autorizado: Mapped[int | None] = mapped_column(nullable=True)

    etapas_generadas: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    abogado_responsable = relationship("User", foreign_keys=[abogado_responsable_id])
    stages = relationship(
        "CaseStage",
        back_populates="case",
        cascade="all, delete-orphan",
        order_by="CaseStage.orden",
    )
    clients = relationship("CaseClient", back_populates="case", cascade="all, delete-orphan")

    @property
    def advance_gate_active(self) -> bool:
        return self.alcance_cliente_autorizado is not None


class CaseClient(db.Model):
    __tablename__ = "case_client"
    __table_args__ = (UniqueConstraint("case_id", "client_id", name="uq_case_client"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("legal_case.id"), nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(ForeignKey("user_account.id"), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    case = relationship("Case", back_populates="clients")
    client = relationship("User")


class CaseStage(db.Model):
    __tablename__ = "case_stage"
    __table_args__ = (
        CheckConstraint("orden >= 1", name="ck_case_stage_orden"),
        CheckConstraint("monto_pagado_uf >= 0", name="ck_case_stage_monto_pagado"),
        Index("ix_case_stage_case_orden", "case_id", "orden"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    case_id: Mapped[int] = mapped_column(ForeignKey("legal_case.id"), nullable=False, index=True)
    etapa: Mapped[str] = mapped_column(db.String(100), nullable=False)
    descripcion: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    orden: Mapped[int] = mapped_column(nullable=False)
    estado: Mapped[StageEstado] = mapped_column(
        SAEnum(StageEstado, name="stage_estado", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=StageEstado.PENDIENTE,
    )
    es_publica: Mapped[bool] = mapped_column(nullable=False, default=True)
    fecha_programada: Mapped[date | None] = mapped_column(nullable=True)
    fecha_cumplida: Mapped[datetime | None] = mapped_column(nullable=True)
    observaciones: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    responsable_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)

    requiere_pago: Mapped[bool] = mapped_column(nullable=False, default=False)
    costo_uf: Mapped[Decimal | None] = mapped_column(db.Numeric(12, 2), nullable=True)
    estado_pago: Mapped[PagoEstado] = mapped_column(
        SAEnum(PagoEstado, name="pago_estado", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PagoEstado.PENDIENTE,
    )
    enlace_pago: Mapped[str | None] = mapped_column(db.String(500), nullable=True)
    monto_pagado_uf: Mapped[Decimal] = mapped_column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    monto_variable_base: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)
    porcentaje_variable: Mapped[Decimal | None] = mapped_column(db.Numeric(5, 2), nullable=True)
    notas_pago: Mapped[str | None] = mapped_column(db.String(1000), nullable=True)

    version: Mapped[int] = mapped_column(nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    case = relationship("Case", back_populates="stages")
    responsable = relationship("User", foreign_keys=[responsable_id])

    @validates("case_id")
    def validate_case_id(self, _key, value):
        # A stage never moves to another case.
        if self.case_id is not None and value != self.case_id:
            raise ValueError("Una etapa no puede cambiar de caso")
        return value


class AuditLog(db.Model):
    __tablename__ = "audit_log"
    __table_args__ = (Index("ix_audit_log_entity", "entity_type", "entity_id", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    actor_id: Mapped[int | None] = mapped_column(ForeignKey("user_account.id"), nullable=True)
    action: Mapped[str] = mapped_column(db.String(40), nullable=False)
    entity_type: Mapped[str] = mapped_column(db.String(40), nullable=False)
    entity_id: Mapped[int | None] = mapped_column(nullable=True)
    diff_json: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False, index=True)

    actor = relationship("User")


def seed_demo_data(session) -> None:
    from app.etapas.generacion import generate_initial_stages

    admin = User(
        email="admin@estudio.local",
        nombre="Administradora Estudio",
        password_hash=generate_password_hash("admin123"),
        role=UserRole.ADMIN_FIRMA,
    )
    abogado = User(
        email="abogado@estudio.local",
        nombre="Abogado Responsable",
        password_hash=generate_password_hash("abogado123"),
        role=UserRole.ABOGADO,
    )
    analista = User(
        email="analista@estudio.local",
        nombre="Analista Legal",
        password_hash=generate_password_hash("analista123"),
        role=UserRole.ANALISTA,
    )
    cliente = User(
        email="cliente@estudio.local",
        nombre="Cliente Demo",
        password_hash=generate_password_hash("cliente123"),
        role=UserRole.CLIENTE,
    )
    session.add_all([admin, abogado, analista, cliente])
    session.flush()

    civil = Case(
        numero_causa="C-1234-2024",
        caratulado="Perez con Inmobiliaria Los Andes",
        materia="Civil",
        tribunal="1er Juzgado Civil de Santiago",
        nombre_cliente="Juan Perez",
        fecha_inicio=date(2024, 1, 1),
        abogado_responsable_id=abogado.id,
        honorario_total_uf=Decimal("100.00"),
        honorario_moneda=HonorarioMoneda.UF,
        modalidad_cobro=ModalidadCobro.PREPAGO,
    )
    laboral = Case(
        numero_causa="O-88-2024",
        caratulado="Soto con Transportes del Sur",
        materia="Laboral",
        tribunal="2do Juzgado de Letras del Trabajo",
        nombre_cliente="Maria Soto",
        fecha_inicio=date(2024, 3, 1),
        abogado_responsable_id=abogado.id,
        honorario_moneda=HonorarioMoneda.CLP,
        modalidad_cobro=ModalidadCobro.POSTPAGO,
    )
    session.add_all([civil, laboral])
    session.flush()
    session.add(CaseClient(case_id=civil.id, client_id=cliente.id))

    generate_initial_stages(civil, commit=False)
    generate_initial_stages(laboral, commit=False)
    session.commit()
