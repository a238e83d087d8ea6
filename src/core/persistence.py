from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    func,
    or_,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from core.logging import get_logger
from core.models import MatchRecord
from core.normalization import STOPPED_STATUSES

logger = get_logger("core.persistence")

# oltre questa età dal kickoff una fixture non risolta non è più seguita live
LIVE_WINDOW_HOURS = 24

Base = declarative_base()


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


class FixtureRow(Base):
    __tablename__ = "fixtures"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fixture_id = Column(Integer, nullable=True)
    league = Column(String(100), nullable=False, index=True)
    kickoff = Column(DateTime, nullable=False, index=True)
    teams = Column(String(200), nullable=False)

    predicted_outcome = Column(String(100), nullable=True)
    predicted_score = Column(String(20), nullable=True)
    odds = Column(String(20), nullable=True)

    actual_outcome = Column(String(100), nullable=True)
    actual_score = Column(String(20), nullable=True)

    status = Column(String(10), nullable=True)
    live_score = Column(String(20), nullable=True)
    elapsed = Column(Integer, nullable=True)

    telegram_message_id = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("league", "fixture_id", name="uq_fixtures_league_fixture_id"),
        Index("ix_fixtures_league_kickoff_teams", "league", "kickoff", "teams"),
    )


class UserActivityRow(Base):
    __tablename__ = "user_activity"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(50), nullable=False, unique=True, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    username = Column(String(100), nullable=True)
    last_activity = Column(DateTime, nullable=False)


_RECORD_FIELDS = (
    "fixture_id",
    "league",
    "kickoff",
    "teams",
    "predicted_outcome",
    "predicted_score",
    "odds",
    "actual_outcome",
    "actual_score",
    "status",
    "live_score",
    "elapsed",
    "telegram_message_id",
)


def _to_record(row: FixtureRow) -> MatchRecord:
    return MatchRecord(**{name: getattr(row, name) for name in _RECORD_FIELDS})


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class MatchStore:
    """
    Store SQLite (SQLAlchemy) per fixtures e attività utenti.

    Una sola tabella fixtures partizionata per colonna league.
    Ogni metodo pubblico apre la propria transazione: un errore a metà batch
    lascia committate le righe precedenti.
    """

    def __init__(self, db_path: str = "data/predictions.db", *, url: Optional[str] = None) -> None:
        if url is None:
            path = Path(db_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            url = f"sqlite:///{path}"
            self.db_path: Optional[Path] = path
        else:
            self.db_path = None
        self.engine = create_engine(url, future=True)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)
        Base.metadata.create_all(self.engine)
        logger.info("Database inizializzato: %s", url)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._session_factory() as session:
            with session.begin():
                yield session

    def close(self) -> None:
        self.engine.dispose()

    # -- lookup -------------------------------------------------------------

    def _find_row(self, session: Session, record: MatchRecord) -> Optional[FixtureRow]:
        if record.fixture_id is not None:
            stmt = select(FixtureRow).where(
                FixtureRow.league == record.league,
                FixtureRow.fixture_id == record.fixture_id,
            )
        else:
            # chiave composita legacy: solo per record senza fixture_id
            stmt = select(FixtureRow).where(
                FixtureRow.league == record.league,
                FixtureRow.kickoff == _naive_utc(record.kickoff),
                FixtureRow.teams == record.teams,
                FixtureRow.fixture_id.is_(None),
            )
        return session.execute(stmt).scalars().first()

    def find(self, record: MatchRecord) -> Optional[MatchRecord]:
        with self._session() as session:
            row = self._find_row(session, record)
            return _to_record(row) if row is not None else None

    def exists(self, record: MatchRecord) -> bool:
        return self.find(record) is not None

    def get_by_fixture_id(self, fixture_id: int) -> Optional[MatchRecord]:
        with self._session() as session:
            row = session.execute(
                select(FixtureRow).where(FixtureRow.fixture_id == fixture_id)
            ).scalars().first()
            return _to_record(row) if row is not None else None

    # -- write --------------------------------------------------------------

    def insert(self, record: MatchRecord) -> MatchRecord:
        values = {name: getattr(record, name) for name in _RECORD_FIELDS}
        values["kickoff"] = _naive_utc(record.kickoff)
        with self._session() as session:
            row = FixtureRow(**values)
            session.add(row)
            session.flush()
            logger.info(
                "Match inserito league=%s teams=%s kickoff=%s",
                record.league,
                record.teams,
                record.kickoff_display,
                extra={"fixture_id": record.fixture_id, "league": record.league},
            )
            return _to_record(row)

    def upsert_fixture(self, record: MatchRecord) -> Tuple[MatchRecord, bool]:
        """
        Inserisce se assente; se presente aggiorna solo il kickoff (rinvii).
        Una fixture rinviata e ripianificata riprende lo status corrente.
        Ritorna (record salvato, created).
        """
        with self._session() as session:
            row = self._find_row(session, record)
            if row is None:
                values = {name: getattr(record, name) for name in _RECORD_FIELDS}
                values["kickoff"] = _naive_utc(record.kickoff)
                row = FixtureRow(**values)
                session.add(row)
                session.flush()
                logger.info(
                    "Match inserito league=%s teams=%s kickoff=%s",
                    record.league,
                    record.teams,
                    record.kickoff_display,
                    extra={"fixture_id": record.fixture_id, "league": record.league},
                )
                return _to_record(row), True
            new_kickoff = _naive_utc(record.kickoff)
            if row.kickoff != new_kickoff:
                logger.info(
                    "Kickoff aggiornato %s: %s -> %s",
                    row.teams,
                    row.kickoff,
                    new_kickoff,
                    extra={"fixture_id": row.fixture_id, "league": row.league},
                )
                row.kickoff = new_kickoff
                if row.status in STOPPED_STATUSES:
                    row.status = record.status
            return _to_record(row), False

    def set_prediction(self, record: MatchRecord) -> bool:
        """Scrive i campi predetti solo se ancora vuoti. True se scritti."""
        with self._session() as session:
            row = self._find_row(session, record)
            if row is None:
                logger.warning("set_prediction: match non trovato %s", record.teams)
                return False
            if row.predicted_outcome is not None:
                logger.info("Predizione già presente, ignorata: %s", row.teams)
                return False
            row.predicted_outcome = record.predicted_outcome
            row.predicted_score = record.predicted_score
            row.odds = record.odds
            return True

    def update_live(self, record: MatchRecord) -> bool:
        """Aggiorna status / punteggio live / minuto finché il match non è risolto."""
        with self._session() as session:
            row = self._find_row(session, record)
            if row is None or row.actual_outcome is not None:
                return False
            row.status = record.status
            row.live_score = record.live_score
            row.elapsed = record.elapsed
            return True

    def set_result(self, record: MatchRecord) -> bool:
        """Scrive esito/punteggio reali una sola volta."""
        with self._session() as session:
            row = self._find_row(session, record)
            if row is None:
                logger.warning("set_result: match non trovato %s", record.teams)
                return False
            if row.actual_outcome is not None:
                return False
            row.actual_outcome = record.actual_outcome
            row.actual_score = record.actual_score
            if record.status is not None:
                row.status = record.status
            if record.actual_score is not None:
                row.live_score = record.actual_score
            if record.elapsed is not None:
                row.elapsed = record.elapsed
            logger.info(
                "Risultato salvato %s: %s (%s)",
                row.teams,
                row.actual_outcome,
                row.actual_score,
                extra={"fixture_id": row.fixture_id, "league": row.league},
            )
            return True

    def set_message_id(self, record: MatchRecord, message_id: int) -> bool:
        with self._session() as session:
            row = self._find_row(session, record)
            if row is None:
                logger.warning("set_message_id: match non trovato %s", record.teams)
                return False
            if row.telegram_message_id is not None:
                return False
            row.telegram_message_id = message_id
            logger.info(
                "Telegram message id salvato per %s",
                row.teams,
                extra={"message_id": message_id, "fixture_id": row.fixture_id},
            )
            return True

    def delete(self, record: MatchRecord) -> bool:
        with self._session() as session:
            row = self._find_row(session, record)
            if row is None:
                return False
            session.delete(row)
            logger.info(
                "Match eliminato %s", row.teams, extra={"fixture_id": row.fixture_id, "league": row.league}
            )
            return True

    # -- read ---------------------------------------------------------------

    def _select_records(self, *conditions) -> List[MatchRecord]:
        stmt = select(FixtureRow).where(*conditions).order_by(FixtureRow.kickoff, FixtureRow.id)
        with self._session() as session:
            return [_to_record(r) for r in session.execute(stmt).scalars().all()]

    def all(self) -> List[MatchRecord]:
        return self._select_records()

    def upcoming(self, now: Optional[datetime] = None, hours: int = 24) -> List[MatchRecord]:
        start = _naive_utc(now) if now else _utcnow()
        end = start + timedelta(hours=hours)
        return self._select_records(
            FixtureRow.kickoff > start,
            FixtureRow.kickoff < end,
            FixtureRow.predicted_outcome.is_not(None),
        )

    def pending_publication(self, now: Optional[datetime] = None, hours: int = 12) -> List[MatchRecord]:
        start = _naive_utc(now) if now else _utcnow()
        end = start + timedelta(hours=hours)
        return self._select_records(
            FixtureRow.kickoff > start,
            FixtureRow.kickoff <= end,
            FixtureRow.predicted_outcome.is_not(None),
            FixtureRow.telegram_message_id.is_(None),
        )

    def live_candidates(
        self, now: Optional[datetime] = None, window_hours: int = LIVE_WINDOW_HOURS
    ) -> List[MatchRecord]:
        """Fixture pubblicate, iniziate da meno di window_hours, non risolte né ferme."""
        current = _naive_utc(now) if now else _utcnow()
        return self._select_records(
            FixtureRow.kickoff <= current,
            FixtureRow.kickoff >= current - timedelta(hours=window_hours),
            or_(FixtureRow.status.is_(None), FixtureRow.status.not_in(sorted(STOPPED_STATUSES))),
            FixtureRow.telegram_message_id.is_not(None),
            FixtureRow.actual_outcome.is_(None),
            FixtureRow.fixture_id.is_not(None),
        )

    def resolved_between(self, start: datetime, end: datetime) -> List[MatchRecord]:
        return self._select_records(
            FixtureRow.kickoff > _naive_utc(start),
            FixtureRow.kickoff <= _naive_utc(end),
            FixtureRow.actual_outcome.is_not(None),
        )

    def leagues(self) -> List[str]:
        with self._session() as session:
            rows = session.execute(select(FixtureRow.league).distinct().order_by(FixtureRow.league))
            return [r[0] for r in rows]

    # -- user activity ------------------------------------------------------

    def touch_user(
        self,
        user_id: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        username: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> bool:
        """Registra/aggiorna l'attività di un utente. True se utente nuovo."""
        ts = _naive_utc(now) if now else _utcnow()
        with self._session() as session:
            row = session.execute(
                select(UserActivityRow).where(UserActivityRow.user_id == user_id)
            ).scalars().first()
            if row is None:
                session.add(
                    UserActivityRow(
                        user_id=user_id,
                        first_name=first_name,
                        last_name=last_name,
                        username=username,
                        last_activity=ts,
                    )
                )
                logger.info("Nuovo utente: %s", user_id)
                return True
            row.first_name = first_name
            row.last_name = last_name
            row.username = username
            row.last_activity = ts
            logger.debug("Attività utente aggiornata: %s", user_id)
            return False

    def user_count(self) -> int:
        with self._session() as session:
            return int(session.execute(select(func.count(UserActivityRow.id))).scalar_one())

    def active_user_count(self, since: datetime) -> int:
        with self._session() as session:
            stmt = select(func.count(UserActivityRow.id)).where(
                UserActivityRow.last_activity >= _naive_utc(since)
            )
            return int(session.execute(stmt).scalar_one())


__all__ = ["MatchStore", "FixtureRow", "UserActivityRow", "Base"]
