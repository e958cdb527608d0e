"""create fraud tables

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "quiz_submissions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=200), nullable=False),
        sa.Column("quiz_id", sa.String(length=200), nullable=False),
        sa.Column("session_id", sa.String(length=200), nullable=False),
        sa.Column("answers", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("time_spent", sa.Float(), nullable=False),
        sa.Column("start_time", sa.BigInteger(), nullable=True),
        sa.Column("end_time", sa.BigInteger(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_quiz_submissions_user_id", "quiz_submissions", ["user_id"], unique=False)
    op.create_index("ix_quiz_submissions_quiz_id", "quiz_submissions", ["quiz_id"], unique=False)
    op.create_index("ix_quiz_submissions_session_id", "quiz_submissions", ["session_id"], unique=False)
    op.create_index("ix_quiz_submissions_created_at", "quiz_submissions", ["created_at"], unique=False)

    op.create_table(
        "fraud_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=200), nullable=False),
        sa.Column("quiz_id", sa.String(length=200), nullable=False),
        sa.Column("session_id", sa.String(length=200), nullable=False),
        sa.Column("risk_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("fast_completion", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("identical_retries", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("impossible_accuracy", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("suspicious_pattern", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("time_spent", sa.Float(), nullable=False),
        sa.Column("average_time_per_question", sa.Float(), nullable=False),
        sa.Column("retry_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_fraud_logs_user_id", "fraud_logs", ["user_id"], unique=False)
    op.create_index("ix_fraud_logs_quiz_id", "fraud_logs", ["quiz_id"], unique=False)
    op.create_index("ix_fraud_logs_created_at", "fraud_logs", ["created_at"], unique=False)
    op.create_index("ix_fraud_logs_expires_at", "fraud_logs", ["expires_at"], unique=False)

    op.create_table(
        "quiz_answer_keys",
        sa.Column("quiz_id", sa.String(length=200), primary_key=True, nullable=False),
        sa.Column("correct_answers", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )


def downgrade() -> None:
    op.drop_table("quiz_answer_keys")

    op.drop_index("ix_fraud_logs_expires_at", table_name="fraud_logs")
    op.drop_index("ix_fraud_logs_created_at", table_name="fraud_logs")
    op.drop_index("ix_fraud_logs_quiz_id", table_name="fraud_logs")
    op.drop_index("ix_fraud_logs_user_id", table_name="fraud_logs")
    op.drop_table("fraud_logs")

    op.drop_index("ix_quiz_submissions_created_at", table_name="quiz_submissions")
    op.drop_index("ix_quiz_submissions_session_id", table_name="quiz_submissions")
    op.drop_index("ix_quiz_submissions_quiz_id", table_name="quiz_submissions")
    op.drop_index("ix_quiz_submissions_user_id", table_name="quiz_submissions")
    op.drop_table("quiz_submissions")
