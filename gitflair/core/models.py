import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, Text

from gitflair.core.db import Base


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo anyway."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


class Repository(Base):
    __tablename__ = "repositories"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(255), nullable=False, index=True)
    url = Column(String(1024), nullable=False)
    name = Column(String(255), nullable=False)
    full_name = Column(String(512), nullable=False)
    indexed_at = Column(DateTime, nullable=True)   # NULL until the first successful index
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("ix_repositories_url_user", "url", "user_id", unique=True),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "name": self.name,
            "full_name": self.full_name,
            "indexed_at": self.indexed_at.isoformat() if self.indexed_at else None,
        }


class QueryTurn(Base):
    __tablename__ = "qa_history"

    id = Column(String(36), primary_key=True, default=new_id)
    repo_id = Column(String(36), ForeignKey("repositories.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(255), nullable=False)
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    # [{"file_path", "start_line", "end_line"}, ...] in retrieval order
    references_json = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("ix_qa_history_repo_user", "repo_id", "user_id", "created_at"),)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "repo_id": self.repo_id,
            "user_id": self.user_id,
            "question": self.question,
            "answer": self.answer,
            "references_json": list(self.references_json or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
