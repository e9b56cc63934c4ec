"""Create the catalog schema: people, projects, ISA assets and permission caches."""

from __future__ import annotations

from typing import Sequence

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: str | Sequence[str] | None = None
branch_labels = None
depends_on = None


def _uuid(name: str, *args, **kwargs) -> sa.Column:
    return sa.Column(name, postgresql.UUID(as_uuid=True), *args, **kwargs)


def _asset_columns() -> list[sa.Column]:
    return [
        _uuid("id", nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        _uuid("contributor_id", sa.ForeignKey("users.id"), nullable=True),
        _uuid("policy_id", sa.ForeignKey("policies.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        _uuid("id", nullable=False),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("hashed_password", sa.String(), nullable=False),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("orcid_id", sa.String(), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "institutions",
        _uuid("id", nullable=False),
        sa.Column("title", sa.String(), nullable=False, unique=True),
        sa.Column("country", sa.String(), nullable=True),
        sa.Column("web_page", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "programmes",
        _uuid("id", nullable=False),
        sa.Column("title", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("web_page", sa.String(), nullable=True),
        sa.Column("funding_details", sa.Text(), nullable=True),
        sa.Column("is_activated", sa.Boolean(), nullable=True),
        sa.Column("activation_rejection_reason", sa.Text(), nullable=True),
        _uuid("created_by", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "programme_administrators",
        _uuid("programme_id", sa.ForeignKey("programmes.id"), nullable=False),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=False),
        sa.PrimaryKeyConstraint("programme_id", "user_id"),
    )
    op.create_table(
        "projects",
        _uuid("id", nullable=False),
        sa.Column("title", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("web_page", sa.String(), nullable=True),
        _uuid("programme_id", sa.ForeignKey("programmes.id"), nullable=True),
        _uuid("created_by", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "work_groups",
        _uuid("id", nullable=False),
        _uuid("project_id", sa.ForeignKey("projects.id"), nullable=False),
        _uuid("institution_id", sa.ForeignKey("institutions.id"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("project_id", "institution_id"),
    )
    op.create_table(
        "group_memberships",
        _uuid("id", nullable=False),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=True),
        _uuid("work_group_id", sa.ForeignKey("work_groups.id"), nullable=False),
        sa.Column("time_left_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "auth_lookup_update_queues",
        _uuid("id", nullable=False),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "auth_lookups",
        _uuid("id", nullable=False),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=False),
        sa.Column("asset_type", sa.String(), nullable=False),
        _uuid("asset_id", nullable=False),
        sa.Column("can_view", sa.Boolean(), nullable=True),
        sa.Column("can_edit", sa.Boolean(), nullable=True),
        sa.Column("can_manage", sa.Boolean(), nullable=True),
        sa.Column("can_delete", sa.Boolean(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "asset_type", "asset_id"),
    )

    op.create_table(
        "policies",
        _uuid("id", nullable=False),
        sa.Column("sharing_scope", sa.Integer(), nullable=False),
        sa.Column("access_type", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "permissions",
        _uuid("id", nullable=False),
        _uuid("policy_id", sa.ForeignKey("policies.id"), nullable=False),
        sa.Column("contributor_type", sa.String(), nullable=False),
        _uuid("contributor_id", nullable=False),
        sa.Column("access_type", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "asset_projects",
        sa.Column("asset_type", sa.String(), nullable=False),
        _uuid("asset_id", nullable=False),
        _uuid("project_id", sa.ForeignKey("projects.id"), nullable=False),
        sa.PrimaryKeyConstraint("asset_type", "asset_id", "project_id"),
    )
    op.create_table(
        "scales",
        _uuid("id", nullable=False),
        sa.Column("key", sa.String(), nullable=False, unique=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "asset_scales",
        sa.Column("asset_type", sa.String(), nullable=False),
        _uuid("asset_id", nullable=False),
        _uuid("scale_id", sa.ForeignKey("scales.id"), nullable=False),
        sa.PrimaryKeyConstraint("asset_type", "asset_id", "scale_id"),
    )

    op.create_table("investigations", *_asset_columns(), sa.PrimaryKeyConstraint("id"))
    op.create_table(
        "studies",
        *_asset_columns(),
        _uuid("investigation_id", sa.ForeignKey("investigations.id"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "assays",
        *_asset_columns(),
        _uuid("study_id", sa.ForeignKey("studies.id"), nullable=False),
        sa.Column("assay_type_label", sa.String(), nullable=True),
        sa.Column("technology_type_label", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "assay_assets",
        _uuid("id", nullable=False),
        _uuid("assay_id", sa.ForeignKey("assays.id"), nullable=False),
        sa.Column("asset_type", sa.String(), nullable=False),
        _uuid("asset_id", nullable=False),
        sa.Column("direction", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("assay_id", "asset_type", "asset_id"),
    )

    op.create_table(
        "sample_types",
        _uuid("id", nullable=False),
        sa.Column("title", sa.String(), nullable=False, unique=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("uploaded_template", sa.Boolean(), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=True),
        _uuid("contributor_id", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "sample_attributes",
        _uuid("id", nullable=False),
        _uuid("sample_type_id", sa.ForeignKey("sample_types.id"), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("attribute_type", sa.String(), nullable=False),
        sa.Column("unit_symbol", sa.String(), nullable=True),
        sa.Column("required", sa.Boolean(), nullable=True),
        sa.Column("is_title", sa.Boolean(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=True),
        _uuid("linked_sample_type_id", sa.ForeignKey("sample_types.id"), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "samples",
        *_asset_columns(),
        _uuid("sample_type_id", sa.ForeignKey("sample_types.id"), nullable=False),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "strains",
        *_asset_columns(),
        sa.Column("organism", sa.String(), nullable=True),
        sa.Column("provider_name", sa.String(), nullable=True),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "publications",
        *_asset_columns(),
        sa.Column("pubmed_id", sa.Integer(), nullable=True),
        sa.Column("doi", sa.String(), nullable=True),
        sa.Column("abstract", sa.Text(), nullable=True),
        sa.Column("journal", sa.String(), nullable=True),
        sa.Column("published_date", sa.Date(), nullable=True),
        sa.Column("authors", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_publications_pubmed_id", "publications", ["pubmed_id"])
    op.create_index("ix_publications_doi", "publications", ["doi"])
    op.create_table(
        "nodes",
        *_asset_columns(),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_table(
        "node_versions",
        _uuid("id", nullable=False),
        _uuid("node_id", sa.ForeignKey("nodes.id"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("revision_comments", sa.Text(), nullable=True),
        sa.Column("doi", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("node_id", "version"),
    )
    op.create_table(
        "content_blobs",
        _uuid("id", nullable=False),
        sa.Column("asset_type", sa.String(), nullable=False),
        _uuid("asset_id", nullable=False),
        sa.Column("asset_version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("original_filename", sa.String(), nullable=True),
        sa.Column("content_type", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "activity_logs",
        _uuid("id", nullable=False),
        _uuid("user_id", sa.ForeignKey("users.id"), nullable=True),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("controller", sa.String(), nullable=True),
        sa.Column("target_type", sa.String(), nullable=True),
        _uuid("target_id", nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("content_blobs")
    op.drop_table("node_versions")
    op.drop_table("nodes")
    op.drop_index("ix_publications_doi", table_name="publications")
    op.drop_index("ix_publications_pubmed_id", table_name="publications")
    op.drop_table("publications")
    op.drop_table("strains")
    op.drop_table("samples")
    op.drop_table("sample_attributes")
    op.drop_table("sample_types")
    op.drop_table("assay_assets")
    op.drop_table("assays")
    op.drop_table("studies")
    op.drop_table("investigations")
    op.drop_table("asset_scales")
    op.drop_table("scales")
    op.drop_table("asset_projects")
    op.drop_table("permissions")
    op.drop_table("policies")
    op.drop_table("auth_lookups")
    op.drop_table("auth_lookup_update_queues")
    op.drop_table("group_memberships")
    op.drop_table("work_groups")
    op.drop_table("projects")
    op.drop_table("programme_administrators")
    op.drop_table("programmes")
    op.drop_table("institutions")
    op.drop_table("users")
