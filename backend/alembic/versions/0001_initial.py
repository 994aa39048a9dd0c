from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "user",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("username", sa.String(), nullable=False, unique=True),
        sa.Column("display_name", sa.String(), nullable=True),
    )
    op.create_table(
        "tournament",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="open"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_table(
        "tournament_entry",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tournament_id", sa.String(), sa.ForeignKey("tournament.id"), nullable=False),
        sa.Column("team_name", sa.String(), nullable=False),
        sa.Column("day_token", sa.String(), nullable=True),
        sa.Column("is_checked_in", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_checked_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint(
            "tournament_id",
            "day_token",
            name="uq_tournament_entry_tournament_id_day_token",
        ),
    )
    op.create_table(
        "match",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("tournament_id", sa.String(), sa.ForeignKey("tournament.id"), nullable=False),
        sa.Column("round_name", sa.String(), nullable=False),
        sa.Column("round_index", sa.Integer(), nullable=True),
        sa.Column("match_number", sa.Integer(), nullable=True),
        sa.Column("court_number", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("umpire_id", sa.String(), sa.ForeignKey("user.id"), nullable=True),
        sa.Column("is_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'inprogress', 'paused', 'finished')",
            name="ck_match_status",
        ),
    )
    op.create_index("ix_match_tournament_id", "match", ["tournament_id"])
    op.create_table(
        "match_slot",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "match_id",
            sa.String(),
            sa.ForeignKey("match.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("slot_number", sa.Integer(), nullable=False),
        sa.Column("source_type", sa.String(), nullable=False, server_default="entry"),
        sa.Column("entry_id", sa.String(), sa.ForeignKey("tournament_entry.id"), nullable=True),
        sa.Column("source_match_id", sa.String(), sa.ForeignKey("match.id"), nullable=True),
        sa.Column("placeholder_label", sa.String(), nullable=True),
        sa.UniqueConstraint(
            "match_id", "slot_number", name="uq_match_slot_match_id_slot_number"
        ),
    )
    op.create_table(
        "user_permission",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(),
            sa.ForeignKey("user.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("role_type", sa.String(), nullable=False),
        sa.Column(
            "tournament_id",
            sa.String(),
            sa.ForeignKey("tournament.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "match_id",
            sa.String(),
            sa.ForeignKey("match.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "role_type IN ('admin', 'tournament_admin', 'umpire')",
            name="ck_user_permission_role_type",
        ),
    )
    op.create_index("ix_user_permission_user_id", "user_permission", ["user_id"])


def downgrade():
    op.drop_index("ix_user_permission_user_id", table_name="user_permission")
    op.drop_table("user_permission")
    op.drop_table("match_slot")
    op.drop_index("ix_match_tournament_id", table_name="match")
    op.drop_table("match")
    op.drop_table("tournament_entry")
    op.drop_table("tournament")
    op.drop_table("user")
