"""Initial schema: users, barrios and solicitudes."""

revision = "20251020_000000"
down_revision = None
branch_labels = None
depends_on = None

from alembic import op
import sqlalchemy as sa

ESTADOS = ("pendiente", "en_camino", "realizada", "no_realizada")
TIPOS_PAGO = ("subsidiado", "pagado")


def upgrade():
    """Create tables for authentication, neighborhoods and service requests."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(50), nullable=False, server_default="driver", index=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "barrios",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("nombre", sa.String(255), unique=True, nullable=False),
        sa.Column("orden", sa.Integer, nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "solicitudes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("nombre", sa.String(255), nullable=False, index=True),
        sa.Column("apellido", sa.String(255), nullable=False),
        sa.Column("telefono", sa.String(50), nullable=False),
        sa.Column("direccion", sa.String(512), nullable=False),
        sa.Column("barrio_id", sa.String(36), sa.ForeignKey("barrios.id"), nullable=False, index=True),
        sa.Column("coordenadas", sa.String(64)),
        sa.Column(
            "tipo_pago",
            sa.Enum(*TIPOS_PAGO, name="paymenttype"),
            nullable=False,
            server_default="subsidiado",
            index=True,
        ),
        sa.Column("notas", sa.Text),
        sa.Column(
            "estado",
            sa.Enum(*ESTADOS, name="requeststatus"),
            nullable=False,
            server_default="pendiente",
            index=True,
        ),
        sa.Column("fecha_realizacion", sa.DateTime(timezone=True)),
        sa.Column("motivo_no_realizacion", sa.Text),
        sa.Column("fecha_solicitud", sa.DateTime(timezone=True), index=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade():
    """Drop all tables and enum types."""
    op.drop_table("solicitudes")
    op.drop_table("barrios")
    op.drop_table("users")
    sa.Enum(name="requeststatus").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="paymenttype").drop(op.get_bind(), checkfirst=True)
