"""case stage workflow schema

Revision ID: 4b7e2c9a1d03
Revises:
Create Date: 2026-10-17 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4b7e2c9a1d03"
down_revision = None
branch_labels = None
depends_on = None


USER_ROLE = sa.Enum("admin_firma", "abogado", "analista", "cliente", name="user_role")
CASE_ESTADO = sa.Enum("activo", "suspendido", "archivado", "terminado", name="case_estado")
HONORARIO_MONEDA = sa.Enum("UF", "CLP", "USD", name="honorario_moneda")
MODALIDAD_COBRO = sa.Enum("prepago", "postpago", "mixto", name="modalidad_cobro")
STAGE_ESTADO = sa.Enum("pendiente", "en_proceso", "completado", name="stage_estado")
PAGO_ESTADO = sa.Enum(
    "pendiente", "solicitado", "en_proceso", "parcial", "pagado", "vencido", name="pago_estado"
)


def upgrade():
    op.create_table(
        "user_account",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("nombre", sa.String(length=120), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", USER_ROLE, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "legal_case",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("numero_causa", sa.String(length=60), nullable=False, server_default=""),
        sa.Column("caratulado", sa.String(length=500), nullable=False),
        sa.Column("materia", sa.String(length=100), nullable=False),
        sa.Column("tribunal", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("nombre_cliente", sa.String(length=200), nullable=False),
        sa.Column("estado", CASE_ESTADO, nullable=False),
        sa.Column("etapa_actual", sa.String(length=100), nullable=False, server_default=""),
        sa.Column("fecha_inicio", sa.Date(), nullable=False),
        sa.Column("abogado_responsable_id", sa.Integer(), nullable=True),
        sa.Column("honorario_total_uf", sa.Numeric(12, 2), nullable=True),
        sa.Column("honorario_moneda", HONORARIO_MONEDA, nullable=False),
        sa.Column("modalidad_cobro", MODALIDAD_COBRO, nullable=False),
        sa.Column("tarifa_referencia", sa.String(length=200), nullable=True),
        sa.Column("honorario_variable_porcentaje", sa.Numeric(5, 2), nullable=True),
        sa.Column("honorario_variable_base", sa.String(length=1000), nullable=True),
        sa.Column("honorario_notas", sa.Text(), nullable=False, server_default=""),
        sa.Column("alcance_cliente_solicitado", sa.Integer(), nullable=True),
        sa.Column("alcance_cliente_autorizado", sa.Integer(), nullable=True),
        sa.Column("etapas_generadas", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "honorario_total_uf IS NULL OR honorario_total_uf >= 0",
            name="ck_case_honorario_total",
        ),
        sa.ForeignKeyConstraint(["abogado_responsable_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_case_abogado_estado", "legal_case", ["abogado_responsable_id", "estado"])

    op.create_table(
        "case_client",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["case_id"], ["legal_case.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("case_id", "client_id", name="uq_case_client"),
    )
    with op.batch_alter_table("case_client", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_client_case_id"), ["case_id"], unique=False)
        batch_op.create_index(batch_op.f("ix_case_client_client_id"), ["client_id"], unique=False)

    op.create_table(
        "case_stage",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("case_id", sa.Integer(), nullable=False),
        sa.Column("etapa", sa.String(length=100), nullable=False),
        sa.Column("descripcion", sa.Text(), nullable=False, server_default=""),
        sa.Column("orden", sa.Integer(), nullable=False),
        sa.Column("estado", STAGE_ESTADO, nullable=False),
        sa.Column("es_publica", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("fecha_programada", sa.Date(), nullable=True),
        sa.Column("fecha_cumplida", sa.DateTime(), nullable=True),
        sa.Column("observaciones", sa.Text(), nullable=False, server_default=""),
        sa.Column("responsable_id", sa.Integer(), nullable=True),
        sa.Column("requiere_pago", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("costo_uf", sa.Numeric(12, 2), nullable=True),
        sa.Column("estado_pago", PAGO_ESTADO, nullable=False),
        sa.Column("enlace_pago", sa.String(length=500), nullable=True),
        sa.Column("monto_pagado_uf", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("monto_variable_base", sa.String(length=1000), nullable=True),
        sa.Column("porcentaje_variable", sa.Numeric(5, 2), nullable=True),
        sa.Column("notas_pago", sa.String(length=1000), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("orden >= 1", name="ck_case_stage_orden"),
        sa.CheckConstraint("monto_pagado_uf >= 0", name="ck_case_stage_monto_pagado"),
        sa.ForeignKeyConstraint(["case_id"], ["legal_case.id"]),
        sa.ForeignKeyConstraint(["responsable_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("case_stage", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_case_stage_case_id"), ["case_id"], unique=False)
    op.create_index("ix_case_stage_case_orden", "case_stage", ["case_id", "orden"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=40), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=True),
        sa.Column("diff_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["actor_id"], ["user_account.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("audit_log", schema=None) as batch_op:
        batch_op.create_index(batch_op.f("ix_audit_log_created_at"), ["created_at"], unique=False)
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id", "created_at"])


def downgrade():
    op.drop_index("ix_audit_log_entity", table_name="audit_log")
    with op.batch_alter_table("audit_log", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_audit_log_created_at"))
    op.drop_table("audit_log")

    op.drop_index("ix_case_stage_case_orden", table_name="case_stage")
    with op.batch_alter_table("case_stage", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_case_stage_case_id"))
    op.drop_table("case_stage")

    with op.batch_alter_table("case_client", schema=None) as batch_op:
        batch_op.drop_index(batch_op.f("ix_case_client_client_id"))
        batch_op.drop_index(batch_op.f("ix_case_client_case_id"))
    op.drop_table("case_client")

    op.drop_index("ix_case_abogado_estado", table_name="legal_case")
    op.drop_table("legal_case")
    op.drop_table("user_account")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_type in (PAGO_ESTADO, STAGE_ESTADO, MODALIDAD_COBRO, HONORARIO_MONEDA, CASE_ESTADO, USER_ROLE):
            enum_type.drop(bind, checkfirst=True)
