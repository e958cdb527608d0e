import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, BigInteger, Integer, String, Text, Boolean
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class QuizSubmission(Base):
    __tablename__ = "quiz_submissions"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(200), index=True)
    quiz_id: Mapped[str] = mapped_column(String(200), index=True)
    session_id: Mapped[str] = mapped_column(String(200), index=True)

    # JSON-encoded list of option indexes.
    answers: Mapped[str] = mapped_column(Text, default="[]")
    time_spent: Mapped[float] = mapped_column(Float)

    start_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    end_time: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)


class FraudLog(Base):
    __tablename__ = "fraud_logs"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(200), index=True)
    quiz_id: Mapped[str] = mapped_column(String(200), index=True)
    session_id: Mapped[str] = mapped_column(String(200))

    risk_score: Mapped[int] = mapped_column(Integer, default=0)
    fast_completion: Mapped[bool] = mapped_column(Boolean, default=False)
    identical_retries: Mapped[bool] = mapped_column(Boolean, default=False)
    impossible_accuracy: Mapped[bool] = mapped_column(Boolean, default=False)
    suspicious_pattern: Mapped[bool] = mapped_column(Boolean, default=False)

    time_spent: Mapped[float] = mapped_column(Float)
    average_time_per_question: Mapped[float] = mapped_column(Float)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)


class QuizAnswerKey(Base):
    __tablename__ = "quiz_answer_keys"

    quiz_id: Mapped[str] = mapped_column(String(200), primary_key=True)
    # JSON-encoded list of correct option indexes, one per question.
    correct_answers: Mapped[str] = mapped_column(Text, default="[]")
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
