from alembic import op
import sqlalchemy as sa

revision = '3a1c9e5d2b70'
down_revision = None
branch_labels = None
depends_on = None


def _has_table(inspector, table_name: str) -> bool:
    try:
        return table_name in inspector.get_table_names()
    except Exception:
        return False


def _has_index(inspector, table_name: str, index_name: str) -> bool:
    try:
        idxs = inspector.get_indexes(table_name)
        return any(i.get("name") == index_name for i in idxs)
    except Exception:
        return False


def _now(bind):
    return sa.text("CURRENT_TIMESTAMP") if bind.dialect.name == "sqlite" else sa.text("now()")


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not _has_table(inspector, "users"):
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("email", sa.String(length=255), nullable=False),
            sa.Column("location_city", sa.String(length=120), nullable=True),
            sa.Column("location_country", sa.String(length=120), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        )
        op.create_index("ix_users_email", "users", ["email"], unique=True)

    if not _has_table(inspector, "seller_authentications"):
        op.create_table(
            "seller_authentications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("status", sa.String(length=24), nullable=False, server_default="PENDING"),
            sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=_now(bind)),
        )
        op.create_index("ix_seller_authentications_user_id", "seller_authentications", ["user_id"], unique=True)

    if not _has_table(inspector, "listings"):
        op.create_table(
            "listings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("seller_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
            sa.Column("title", sa.String(length=160), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("brand", sa.String(length=80), nullable=False),
            sa.Column("model", sa.String(length=120), nullable=True),
            sa.Column("reference", sa.String(length=80), nullable=True),
            sa.Column("movement", sa.String(length=40), nullable=True),
            sa.Column("condition", sa.String(length=40), nullable=True),
            sa.Column("gender", sa.String(length=16), nullable=True),
            sa.Column("year", sa.Integer(), nullable=True),
            sa.Column("price_minor_units", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("location", sa.String(length=160), nullable=True),
            sa.Column("box_papers", sa.String(length=120), nullable=True),
            sa.Column("image_url", sa.String(length=512), nullable=True),
            sa.Column("status", sa.String(length=24), nullable=False, server_default="DRAFT"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now(bind)),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=_now(bind)),
        )

    inspector = sa.inspect(bind)
    for column in ("seller_id", "brand", "movement", "condition", "gender", "year", "price_minor_units", "status", "created_at"):
        name = f"ix_listings_{column}"
        if _has_table(inspector, "listings") and not _has_index(inspector, "listings", name):
            op.create_index(name, "listings", [column])


def downgrade():
    op.drop_table("listings")
    op.drop_table("seller_authentications")
    op.drop_table("users")
