from alembic import op
import sqlalchemy as sa

revision = "0002_player_tournament_history"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column(
        "player",
        sa.Column("tournament_history", sa.JSON(), nullable=False, server_default="[]"),
    )
    op.create_index("ix_tournament_is_completed", "tournament", ["is_completed"])


def downgrade():
    op.drop_index("ix_tournament_is_completed", table_name="tournament")
    op.drop_column("player", "tournament_history")
