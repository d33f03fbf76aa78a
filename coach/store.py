import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select, and_, col

from coach.errors import AdmissionDenied, PersistenceFailure, UserNotFound
from coach.models import EmotionRecord, ReviewAnalysis, User

logger = logging.getLogger(__name__)

ACTIVE = 0


class CoachStore:
    """Database gateway for the records the coach needs.

    Every method opens its own short session against ``pg_engine`` so the
    store can be shared between request handlers and background tasks.
    """

    def __init__(self, pg_engine):
        self.pg_engine = pg_engine

    def get_user(self, user_id: str) -> User:
        with Session(self.pg_engine) as session:
            user = session.exec(select(User).where(User.id == user_id)).first()
        if user is None:
            raise UserNotFound(user_id)
        return user

    def get_energy(self, user_id: str) -> int:
        return self.get_user(user_id).energy

    def debit_energy(self, user_id: str, cost: int) -> int:
        # check and debit in one conditional statement so two concurrent
        # requests can never both spend the last unit
        statement = (
            update(User)
            .where(and_(User.id == user_id, User.energy >= cost))
            .values(energy=User.energy - cost)
        )
        with self.pg_engine.begin() as connection:
            debited = connection.execute(statement).rowcount

        balance = self.get_energy(user_id)
        if not debited:
            raise AdmissionDenied(balance=balance, cost=cost)
        return balance

    def list_emotions(self, user_id: str, start: datetime, end: datetime) -> List[EmotionRecord]:
        with Session(self.pg_engine) as session:
            return list(session.exec(
                select(EmotionRecord)
                .where(and_(
                    EmotionRecord.user_id == user_id,
                    EmotionRecord.status == ACTIVE,
                    EmotionRecord.record_date >= start,
                    EmotionRecord.record_date <= end,
                ))
                .order_by(EmotionRecord.record_date)
            ).all())

    def previous_review_summary(self, user_id: str, period: str, before: datetime) -> Optional[str]:
        with Session(self.pg_engine) as session:
            previous = session.exec(
                select(ReviewAnalysis)
                .where(and_(
                    ReviewAnalysis.user_id == user_id,
                    ReviewAnalysis.period == period,
                    ReviewAnalysis.start_date < before,
                ))
                .order_by(col(ReviewAnalysis.start_date).desc())
            ).first()
        if previous is None or not previous.summary:
            return None
        return previous.summary

    def get_review_analysis(self, user_id: str, period: str, start: datetime, end: datetime) -> Optional[ReviewAnalysis]:
        with Session(self.pg_engine) as session:
            return session.exec(self._review_window(user_id, period, start, end)).first()

    def upsert_review_analysis(self, user_id: str, period: str, start: datetime, end: datetime, summary: str) -> ReviewAnalysis:
        try:
            try:
                return self._write_review_analysis(user_id, period, start, end, summary)
            except IntegrityError:
                # another writer inserted the same window first, overwrite theirs
                logger.info("review analysis for %s/%s was created concurrently, updating", user_id, period)
                return self._write_review_analysis(user_id, period, start, end, summary)
        except SQLAlchemyError as e:
            raise PersistenceFailure(str(e)) from e

    def _write_review_analysis(self, user_id, period, start, end, summary) -> ReviewAnalysis:
        with Session(self.pg_engine) as session:
            analysis = session.exec(self._review_window(user_id, period, start, end)).first()
            if analysis is None:
                analysis = ReviewAnalysis(
                    user_id=user_id,
                    period=period,
                    start_date=start,
                    end_date=end,
                    summary=summary,
                )
            else:
                analysis.summary = summary

            session.add(analysis)
            session.commit()
            session.refresh(analysis)
            return analysis

    @staticmethod
    def _review_window(user_id, period, start, end):
        return select(ReviewAnalysis).where(and_(
            ReviewAnalysis.user_id == user_id,
            ReviewAnalysis.period == period,
            ReviewAnalysis.start_date == start,
            ReviewAnalysis.end_date == end,
        ))
