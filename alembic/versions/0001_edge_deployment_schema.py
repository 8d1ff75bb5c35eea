"""edge_deployment_schema

Revision ID: 0001_edge_deployment
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_edge_deployment"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_customers_id"), "customers", ["id"], unique=False)
    op.create_index(op.f("ix_customers_email"), "customers", ["email"], unique=True)

    op.create_table(
        "connections",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("credential_encrypted", sa.Text(), nullable=False),
        sa.Column("token_type", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=True),
        sa.Column("connected_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(op.f("ix_connections_id"), "connections", ["id"], unique=False)
    op.create_index(op.f("ix_connections_customer_id"), "connections", ["customer_id"], unique=True)
    op.create_index(op.f("ix_connections_status"), "connections", ["status"], unique=False)

    op.create_table(
        "deployments",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("site_id", sa.String(length=64), nullable=False),
        sa.Column("domain_id", sa.String(length=64), nullable=False),
        sa.Column("domain_name", sa.String(length=255), nullable=False),
        sa.Column("worker_name", sa.String(length=128), nullable=False),
        sa.Column("kv_store_id", sa.String(length=64), nullable=False),
        sa.Column("route_pattern", sa.String(length=512), nullable=True),
        sa.Column("route_id", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=True),
        sa.Column("deployed_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index(op.f("ix_deployments_id"), "deployments", ["id"], unique=False)
    op.create_index(op.f("ix_deployments_customer_id"), "deployments", ["customer_id"], unique=False)
    op.create_index(op.f("ix_deployments_site_id"), "deployments", ["site_id"], unique=False)
    op.create_index(op.f("ix_deployments_domain_id"), "deployments", ["domain_id"], unique=False)
    op.create_index(op.f("ix_deployments_status"), "deployments", ["status"], unique=False)

    op.create_table(
        "variants",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("deployment_id", sa.Uuid(), sa.ForeignKey("deployments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("url_path", sa.String(length=2048), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
        sa.UniqueConstraint("deployment_id", "url_path", name="uq_variants_deployment_path"),
    )
    op.create_index(op.f("ix_variants_id"), "variants", ["id"], unique=False)
    op.create_index(op.f("ix_variants_customer_id"), "variants", ["customer_id"], unique=False)
    op.create_index(op.f("ix_variants_deployment_id"), "variants", ["deployment_id"], unique=False)
    op.create_index(op.f("ix_variants_status"), "variants", ["status"], unique=False)

    op.create_table(
        "deployment_secrets",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("customer_id", sa.Uuid(), sa.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False),
        sa.Column("deployment_id", sa.Uuid(), sa.ForeignKey("deployments.id", ondelete="CASCADE"), nullable=False),
        sa.Column("secret_digest", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=True),
    )
    op.create_index(op.f("ix_deployment_secrets_id"), "deployment_secrets", ["id"], unique=False)
    op.create_index(op.f("ix_deployment_secrets_customer_id"), "deployment_secrets", ["customer_id"], unique=False)
    op.create_index(op.f("ix_deployment_secrets_deployment_id"), "deployment_secrets", ["deployment_id"], unique=False)
    op.create_index(op.f("ix_deployment_secrets_secret_digest"), "deployment_secrets", ["secret_digest"], unique=False)
    op.create_index(op.f("ix_deployment_secrets_status"), "deployment_secrets", ["status"], unique=False)


def downgrade() -> None:
    op.drop_table("deployment_secrets")
    op.drop_table("variants")
    op.drop_table("deployments")
    op.drop_table("connections")
    op.drop_table("customers")
