from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from gitflair.core.errors import StorageError
from gitflair.core.models import QueryTurn, Repository, utcnow


class RecordStore:
    """Relational rows: repositories and question/answer history."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> None:
        with self.session() as s:
            s.execute(select(Repository.id).limit(1)).first()

    # Repositories

    def find_repository(self, url: str, user_id: str) -> Optional[Repository]:
        with self.session() as s:
            return s.execute(
                select(Repository).where(Repository.url == url, Repository.user_id == user_id)
            ).scalar_one_or_none()

    def find_repository_by_url(self, url: str) -> Optional[Repository]:
        with self.session() as s:
            return s.execute(
                select(Repository)
                .where(Repository.url == url)
                .order_by(Repository.created_at.desc())
                .limit(1)
            ).scalar_one_or_none()

    def get_repository(self, repo_id: str) -> Optional[Repository]:
        with self.session() as s:
            return s.get(Repository, repo_id)

    def count_repositories(self, user_id: str) -> int:
        with self.session() as s:
            return s.execute(
                select(func.count()).select_from(Repository).where(Repository.user_id == user_id)
            ).scalar_one()

    def create_repository(self, url: str, user_id: str, name: str, full_name: str) -> Repository:
        repo = Repository(url=url, user_id=user_id, name=name, full_name=full_name)
        with self.session() as s:
            s.add(repo)
        return repo

    def mark_indexed(self, repo_id: str, when: Optional[datetime] = None) -> None:
        with self.session() as s:
            repo = s.get(Repository, repo_id)
            if repo is None:
                raise StorageError(f"Repository {repo_id} disappeared during indexing")
            repo.indexed_at = when or utcnow()

    def list_repositories(self, user_id: str, limit: int = 20) -> List[Repository]:
        """Indexed repositories of a user, most recently indexed first."""
        with self.session() as s:
            return list(
                s.execute(
                    select(Repository)
                    .where(Repository.user_id == user_id, Repository.indexed_at.is_not(None))
                    .order_by(Repository.indexed_at.desc())
                    .limit(limit)
                ).scalars()
            )

    # History

    def count_turns(self, repo_id: str, user_id: str) -> int:
        with self.session() as s:
            return s.execute(
                select(func.count())
                .select_from(QueryTurn)
                .where(QueryTurn.repo_id == repo_id, QueryTurn.user_id == user_id)
            ).scalar_one()

    def add_turn(
        self,
        repo_id: str,
        user_id: str,
        question: str,
        answer: str,
        references: List[dict],
        created_at: Optional[datetime] = None,
    ) -> QueryTurn:
        turn = QueryTurn(
            repo_id=repo_id,
            user_id=user_id,
            question=question,
            answer=answer,
            references_json=references,
            created_at=created_at or utcnow(),
        )
        with self.session() as s:
            s.add(turn)
        return turn

    def list_turns(self, repo_id: str, user_id: str, limit: int = 10) -> List[QueryTurn]:
        """Newest first."""
        with self.session() as s:
            return list(
                s.execute(
                    select(QueryTurn)
                    .where(QueryTurn.repo_id == repo_id, QueryTurn.user_id == user_id)
                    .order_by(QueryTurn.created_at.desc())
                    .limit(limit)
                ).scalars()
            )

    def recent_turns(self, repo_id: str, user_id: str, limit: int = 5) -> List[QueryTurn]:
        """The last `limit` turns, oldest first."""
        return list(reversed(self.list_turns(repo_id, user_id, limit=limit)))
