from alembic import op
import sqlalchemy as sa

revision = '7d4b2f8e6a13'
down_revision = '3a1c9e5d2b70'
branch_labels = None
depends_on = None


def _has_table(inspector, table_name: str) -> bool:
    try:
        return table_name in inspector.get_table_names()
    except Exception:
        return False


def _has_column(inspector, table_name: str, column_name: str) -> bool:
    try:
        cols = inspector.get_columns(table_name)
        return any(c.get("name") == column_name for c in cols)
    except Exception:
        return False


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    if _has_table(inspector, "users") and not _has_column(inspector, "users", "is_verified"):
        with op.batch_alter_table("users") as batch_op:
            batch_op.add_column(sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("0") if bind.dialect.name == "sqlite" else sa.false()))


def downgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    if _has_column(inspector, "users", "is_verified"):
        with op.batch_alter_table("users") as batch_op:
            batch_op.drop_column("is_verified")
