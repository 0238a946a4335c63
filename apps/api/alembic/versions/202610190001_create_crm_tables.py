"""create crm tables

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610190001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _tenant_record_columns() -> list[sa.Column]:
    return [
        sa.Column("team", sa.String(length=64), nullable=False),
        sa.Column("team_name", sa.Text(), nullable=True),
        sa.Column("owner", sa.String(length=64), nullable=True),
        sa.Column("owner_fullname", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Text(), nullable=False),
        sa.Column("updated_by", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _dictionary_fk() -> sa.Column:
    return sa.Column(
        "dictionary_id",
        sa.Uuid(),
        sa.ForeignKey("crm_dictionary.id", ondelete="SET NULL"),
        nullable=True,
    )


def _lead_fk() -> sa.Column:
    return sa.Column("lead_id", sa.Uuid(), sa.ForeignKey("crm_lead.id", ondelete="SET NULL"), nullable=True)


def _create_tenant_indexes(table_name: str) -> None:
    op.create_index(f"ix_{table_name}_team", table_name, ["team"], unique=False)
    op.create_index(f"ix_{table_name}_owner", table_name, ["owner"], unique=False)


def _drop_tenant_indexes(table_name: str) -> None:
    op.drop_index(f"ix_{table_name}_owner", table_name=table_name)
    op.drop_index(f"ix_{table_name}_team", table_name=table_name)


def upgrade() -> None:
    op.create_table(
        "crm_dictionary",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("label", sa.Text(), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("org_id", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crm_dictionary_org_id_type", "crm_dictionary", ["org_id", "type"], unique=False)

    op.create_table(
        "crm_contact",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        _dictionary_fk(),
        *_tenant_record_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    _create_tenant_indexes("crm_contact")

    op.create_table(
        "crm_lead",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sa.Text(), nullable=False),
        sa.Column("last_name", sa.Text(), nullable=True),
        sa.Column("email", sa.Text(), nullable=True),
        sa.Column("company", sa.Text(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        _dictionary_fk(),
        *_tenant_record_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    _create_tenant_indexes("crm_lead")

    op.create_table(
        "crm_deal",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("value", sa.Numeric(18, 2), nullable=False),
        sa.Column("forecast", sa.Numeric(18, 2), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        _lead_fk(),
        _dictionary_fk(),
        *_tenant_record_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    _create_tenant_indexes("crm_deal")

    op.create_table(
        "crm_activity",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.Text(), nullable=True),
        _lead_fk(),
        _dictionary_fk(),
        *_tenant_record_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    _create_tenant_indexes("crm_activity")
    op.create_index("ix_crm_activity_team_date", "crm_activity", ["team", "date"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_crm_activity_team_date", table_name="crm_activity")
    for table_name in ("crm_activity", "crm_deal", "crm_lead", "crm_contact"):
        _drop_tenant_indexes(table_name)
        op.drop_table(table_name)
    op.drop_index("ix_crm_dictionary_org_id_type", table_name="crm_dictionary")
    op.drop_table("crm_dictionary")
