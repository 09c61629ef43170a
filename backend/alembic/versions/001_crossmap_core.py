"""Core schema: catalog, cross-references, tenant scope, Z-Inspection, saved queries

Seeds the seven trustworthy-AI requirements.

Revision ID: 001_crossmap_core
Revises:
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "001_crossmap_core"
down_revision = None
branch_labels = None
depends_on = None

REQUIREMENTS = [
    ("human_agency_oversight", "Human agency and oversight", "Human Agency",
     ["human", "oversight", "agency", "intervention", "override", "autonomy"]),
    ("technical_robustness_safety", "Technical robustness and safety", "Robustness",
     ["robustness", "safety", "resilience", "accuracy", "reliability", "security", "continuity"]),
    ("privacy_data_governance", "Privacy and data governance", "Privacy",
     ["privacy", "personal", "data", "governance", "protection", "consent", "minimisation"]),
    ("transparency", "Transparency", "Transparency",
     ["transparency", "explainability", "traceability", "disclosure", "communication", "logging"]),
    ("diversity_fairness_nondiscrimination", "Diversity, non-discrimination and fairness", "Fairness",
     ["fairness", "bias", "discrimination", "diversity", "accessibility", "inclusion"]),
    ("societal_environmental_wellbeing", "Societal and environmental well-being", "Well-being",
     ["societal", "environmental", "wellbeing", "sustainability", "social", "impact"]),
    ("accountability", "Accountability", "Accountability",
     ["accountability", "audit", "auditability", "responsibility", "redress", "reporting"]),
]


def upgrade() -> None:
    # ── 1. Catalog ──
    op.create_table(
        "frameworks",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("version", sa.String(50), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        "controls",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("framework_id", sa.String(100), sa.ForeignKey("frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("ref_id", sa.String(100), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("framework_id", "ref_id", name="uq_control_fw_ref"),
    )
    op.create_index("ix_control_framework", "controls", ["framework_id"])

    requirements = op.create_table(
        "trustworthy_requirements",
        sa.Column("id", sa.String(60), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("short_name", sa.String(60), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("keywords", sa.JSON, nullable=True),
        sa.Column("display_order", sa.Integer, server_default="0", nullable=False),
    )

    op.create_table(
        "requirement_control_mappings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("requirement_id", sa.String(60),
                  sa.ForeignKey("trustworthy_requirements.id", ondelete="CASCADE"), nullable=False),
        sa.Column("control_id", sa.String(100), sa.ForeignKey("controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("strength", sa.Float, server_default="0.5", nullable=False),
        sa.Column("rationale", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("requirement_id", "control_id", name="uq_rcm_req_ctrl"),
        sa.CheckConstraint("strength >= 0 AND strength <= 1", name="ck_rcm_strength"),
    )
    op.create_index("ix_rcm_control", "requirement_control_mappings", ["control_id"])

    # ── 2. Cross-references ──
    op.create_table(
        "control_cross_references",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("source_control_id", sa.String(100), sa.ForeignKey("controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("target_control_id", sa.String(100), sa.ForeignKey("controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("relationship_kind", sa.String(20), nullable=False),
        sa.Column("base_confidence", sa.Float, server_default="0.8", nullable=False),
        sa.Column("confidence", sa.Float, server_default="0.8", nullable=False),
        sa.Column("provenance", sa.String(30), server_default="manual", nullable=False),
        sa.Column("rationale", sa.Text, nullable=True),
        sa.Column("is_superseded", sa.Boolean, server_default=sa.text("0"), nullable=False),
        sa.Column("superseded_at", sa.DateTime, nullable=True),
        sa.Column("superseded_by_id", sa.Integer,
                  sa.ForeignKey("control_cross_references.id", ondelete="SET NULL"), nullable=True),
        sa.Column("version_id", sa.Integer, nullable=False),
        sa.Column("created_by", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_ccr_confidence"),
        sa.CheckConstraint("base_confidence >= 0 AND base_confidence <= 1", name="ck_ccr_base_confidence"),
        sa.CheckConstraint("source_control_id <> target_control_id", name="ck_ccr_no_self"),
    )
    op.create_index("ix_ccr_pair", "control_cross_references", ["source_control_id", "target_control_id"])
    op.create_index("ix_ccr_source", "control_cross_references", ["source_control_id"])
    op.create_index("ix_ccr_target", "control_cross_references", ["target_control_id"])
    op.create_index("ix_ccr_kind", "control_cross_references", ["relationship_kind"])

    # ── 3. Tenant scope ──
    op.create_table(
        "tenant_module_configs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(255), nullable=False),
        sa.Column("framework_id", sa.String(100), sa.ForeignKey("frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("enabled", sa.Boolean, server_default=sa.text("1"), nullable=False),
        sa.Column("updated_by", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("tenant_id", "framework_id", name="uq_tmc_tenant_fw"),
    )
    op.create_index("ix_tmc_tenant", "tenant_module_configs", ["tenant_id"])

    op.create_table(
        "tenant_control_exclusions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(255), nullable=False),
        sa.Column("control_id", sa.String(100), sa.ForeignKey("controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("created_by", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("tenant_id", "control_id", name="uq_tce_tenant_ctrl"),
    )
    op.create_index("ix_tce_tenant", "tenant_control_exclusions", ["tenant_id"])

    # ── 4. Z-Inspection ──
    op.create_table(
        "inspection_reports",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("tenant_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("ai_system_name", sa.String(300), nullable=True),
        sa.Column("inspected_at", sa.DateTime, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_ir_tenant", "inspection_reports", ["tenant_id"])

    op.create_table(
        "inspection_findings",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("report_id", sa.String(100), sa.ForeignKey("inspection_reports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("requirement_id", sa.String(60),
                  sa.ForeignKey("trustworthy_requirements.id", ondelete="SET NULL"), nullable=True),
        sa.Column("severity", sa.String(20), server_default="medium", nullable=False),
        sa.Column("finding_type", sa.String(30), server_default="observation", nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_if_report", "inspection_findings", ["report_id"])

    op.create_table(
        "finding_control_links",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("finding_id", sa.String(100), sa.ForeignKey("inspection_findings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("control_id", sa.String(100), sa.ForeignKey("controls.id", ondelete="CASCADE"), nullable=False),
        sa.Column("framework_id", sa.String(100), sa.ForeignKey("frameworks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("link_type", sa.String(20), server_default="recommended", nullable=False),
        sa.Column("confidence", sa.Float, nullable=False),
        sa.Column("rationale", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("finding_id", "control_id", name="uq_fcl_finding_ctrl"),
    )
    op.create_index("ix_fcl_control", "finding_control_links", ["control_id"])

    op.create_table(
        "cross_reference_adjustments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("cross_reference_id", sa.Integer,
                  sa.ForeignKey("control_cross_references.id", ondelete="CASCADE"), nullable=False),
        sa.Column("report_id", sa.String(100), sa.ForeignKey("inspection_reports.id", ondelete="CASCADE"), nullable=False),
        sa.Column("delta", sa.Float, nullable=False),
        sa.Column("old_confidence", sa.Float, nullable=False),
        sa.Column("new_confidence", sa.Float, nullable=False),
        sa.Column("clamped", sa.Boolean, server_default=sa.text("0"), nullable=False),
        sa.Column("justification", sa.JSON, nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("cross_reference_id", "report_id", name="uq_ccra_edge_report"),
    )
    op.create_index("ix_ccra_report", "cross_reference_adjustments", ["report_id"])

    # ── 5. Saved queries ──
    op.create_table(
        "saved_analysis_queries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("query_type", sa.String(30), nullable=False),
        sa.Column("parameters", sa.JSON, nullable=False),
        sa.Column("is_scheduled", sa.Boolean, server_default=sa.text("0"), nullable=False),
        sa.Column("schedule_frequency", sa.String(20), nullable=True),
        sa.Column("last_run_at", sa.DateTime, nullable=True),
        sa.Column("last_result", sa.JSON, nullable=True),
        sa.Column("created_by", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_saq_tenant", "saved_analysis_queries", ["tenant_id"])
    op.create_index("ix_saq_scheduled", "saved_analysis_queries", ["is_scheduled"])

    # ── 6. Seed the seven requirements ──
    op.bulk_insert(requirements, [
        {"id": rid, "name": name, "short_name": short, "keywords": kws, "display_order": order}
        for order, (rid, name, short, kws) in enumerate(REQUIREMENTS, 1)
    ])


def downgrade() -> None:
    op.drop_table("saved_analysis_queries")
    op.drop_table("cross_reference_adjustments")
    op.drop_table("finding_control_links")
    op.drop_table("inspection_findings")
    op.drop_table("inspection_reports")
    op.drop_table("tenant_control_exclusions")
    op.drop_table("tenant_module_configs")
    op.drop_table("control_cross_references")
    op.drop_table("requirement_control_mappings")
    op.drop_table("trustworthy_requirements")
    op.drop_table("controls")
    op.drop_table("frameworks")
