import logging

from fastapi.concurrency import run_in_threadpool

from coach.errors import AdmissionDenied, RequestValidationFailed
from coach.store import CoachStore

logger = logging.getLogger(__name__)

CHAT_COST = 1
REVIEW_COSTS = {
    "day": 1,
    "week": 1,
    "month": 3,
}


def review_cost(period: str) -> int:
    try:
        return REVIEW_COSTS[period]
    except KeyError:
        raise RequestValidationFailed(f"invalid period {period!r}, must be one of: day, week, month") from None


class EnergyGate:
    """Checks and debits a user's energy before any model call is made.

    The debit is non-refundable: once admitted, a request keeps its cost even
    when the upstream stream later fails.
    """

    def __init__(self, store: CoachStore, metrics):
        self.store = store
        self.metrics = metrics

    async def admit(self, user_id: str, cost: int) -> int:
        try:
            remaining = await run_in_threadpool(self.store.debit_energy, user_id, cost)
        except AdmissionDenied as e:
            self.metrics.incr("admission.denied")
            logger.info("admission denied for %s: balance %d, cost %d", user_id, e.balance, e.cost)
            raise

        logger.debug("debited %d energy from %s, %d left", cost, user_id, remaining)
        return remaining
