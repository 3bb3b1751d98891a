"""Persistence layer for saved portfolios.

Portfolios (plans plus their modifiers and CPI data) are stored as JSON
documents per anonymous user token. It defaults to SQLite for local
development, but accepts any SQLAlchemy-compatible URL (e.g.
PostgreSQL/MySQL) for shared deployments. The engine never touches this
module; the web app loads a portfolio here and hands it to the engine.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, delete, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PortfolioModel(Base):
    __tablename__ = "portfolios"

    id = Column(String(64), primary_key=True)
    user_token = Column(String(64), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    plan_count = Column(Integer, nullable=False, default=0)
    document = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    def load(self) -> dict:
        return json.loads(self.document)

    def store(self, portfolio: dict) -> None:
        self.document = json.dumps(portfolio)
        self.plan_count = len(portfolio.get("plans") or [])


class PortfolioStore:
    """Saved portfolios keyed by user token.

    Each user keeps at most ``max_per_user`` portfolios; saving past the limit
    drops the oldest ones. A falsy token owns nothing, so every read returns
    empty and every write is ignored.
    """

    def __init__(self, url: str, *, max_per_user: int = 10) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._sessions = sessionmaker(self._engine, expire_on_commit=False, future=True)
        self.max_per_user = max_per_user

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        with self._sessions.begin() as session:
            yield session

    @staticmethod
    def _owned(session: Session, user_token: str, portfolio_id: str) -> Optional[PortfolioModel]:
        row = session.get(PortfolioModel, portfolio_id)
        if row is None or row.user_token != user_token:
            return None
        return row

    def list_portfolios(self, user_token: str) -> List[Dict[str, Any]]:
        if not user_token:
            return []
        query = (
            select(PortfolioModel)
            .where(PortfolioModel.user_token == user_token)
            .order_by(PortfolioModel.created_at, PortfolioModel.id)
        )
        with self._sessions() as session:
            return [self._describe(row) for row in session.execute(query).scalars()]

    def get_portfolio(self, user_token: str, portfolio_id: str) -> Optional[Dict[str, Any]]:
        if not user_token:
            return None
        with self._sessions() as session:
            row = self._owned(session, user_token, portfolio_id)
            return self._describe(row, with_document=True) if row else None

    def save_portfolio(
        self, user_token: str, name: str, portfolio: dict, portfolio_id: Optional[str] = None
    ) -> Optional[str]:
        """Store a new portfolio and return its id."""
        if not user_token:
            return None
        row = PortfolioModel(id=portfolio_id or uuid4().hex, user_token=user_token, name=name)
        row.store(portfolio)
        with self._transaction() as session:
            session.add(row)
            self._enforce_limit(session, user_token)
        return row.id

    def update_portfolio(
        self,
        user_token: str,
        portfolio_id: str,
        name: Optional[str] = None,
        portfolio: Optional[dict] = None,
    ) -> bool:
        if not user_token:
            return False
        with self._transaction() as session:
            row = self._owned(session, user_token, portfolio_id)
            if row is None:
                return False
            if name:
                row.name = name
            if portfolio is not None:
                row.store(portfolio)
        return True

    def delete_portfolio(self, user_token: str, portfolio_id: str) -> bool:
        if not user_token:
            return False
        with self._transaction() as session:
            row = self._owned(session, user_token, portfolio_id)
            if row is None:
                return False
            session.delete(row)
        return True

    def delete_all(self, user_token: str) -> int:
        """Remove every portfolio of ``user_token``; returns how many went."""
        if not user_token:
            return 0
        with self._transaction() as session:
            result = session.execute(
                delete(PortfolioModel).where(PortfolioModel.user_token == user_token)
            )
            return result.rowcount

    def _enforce_limit(self, session: Session, user_token: str) -> None:
        if not self.max_per_user or self.max_per_user < 0:
            return
        stale = session.execute(
            select(PortfolioModel.id)
            .where(PortfolioModel.user_token == user_token)
            .order_by(PortfolioModel.created_at.desc(), PortfolioModel.id.desc())
            .offset(self.max_per_user)
        ).scalars().all()
        if stale:
            session.execute(
                delete(PortfolioModel)
                .where(PortfolioModel.id.in_(stale))
                .execution_options(synchronize_session=False)
            )

    @staticmethod
    def _describe(row: PortfolioModel, with_document: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": row.id,
            "name": row.name,
            "plans": row.plan_count,
            "created_at": row.created_at.isoformat(),
            "updated_at": row.updated_at.isoformat(),
        }
        if with_document:
            data["portfolio"] = row.load()
        return data


def create_store(url: Optional[str], max_per_user: int = 10) -> PortfolioStore:
    return PortfolioStore(url or "sqlite:///portfolio_data.sqlite3", max_per_user=max_per_user)
