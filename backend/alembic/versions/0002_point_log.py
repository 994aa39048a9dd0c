from alembic import op
import sqlalchemy as sa

revision = "0002_point_log"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column(
        "match",
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_table(
        "point",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column(
            "match_id",
            sa.String(),
            sa.ForeignKey("match.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("point_type", sa.String(), nullable=False),
        sa.Column("is_undone", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("server_received_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.CheckConstraint(
            "point_type IN ('A_score', 'B_score')", name="ck_point_point_type"
        ),
        sa.UniqueConstraint("match_id", "sequence", name="uq_point_match_id_sequence"),
    )
    op.create_index("ix_point_match_id_is_undone", "point", ["match_id", "is_undone"])
    op.create_table(
        "match_score",
        sa.Column(
            "match_id",
            sa.String(),
            sa.ForeignKey("match.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("game_count_a", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("game_count_b", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("winner_side", sa.String(length=1), nullable=True),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade():
    op.drop_table("match_score")
    op.drop_index("ix_point_match_id_is_undone", table_name="point")
    op.drop_table("point")
    op.drop_column("match", "version")
