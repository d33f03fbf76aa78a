from redis import asyncio as aioredis
from sqlmodel import create_engine, SQLModel
import logging
import statsd

from coach.app import create_app
from coach.assistant import CoachAssistant
from coach.auth import TokenValidator
from coach.config import Settings
from coach.history import SessionHistory
from coach.llm import ChatModelClient
from coach.store import CoachStore
from coach.tasks import TaskTracker

settings = Settings.from_env()

logging.basicConfig(level=settings.log_level)

pg_engine = create_engine(settings.database_url)
redis = aioredis.from_url(settings.redis_url, decode_responses=True)
metrics = statsd.StatsClient(host=settings.graphite_host, port=settings.graphite_port, prefix=settings.metrics_prefix)

# create all tables
SQLModel.metadata.create_all(pg_engine)

store = CoachStore(pg_engine)
tracker = TaskTracker()
assistant = CoachAssistant(
    metrics=metrics,
    store=store,
    history=SessionHistory(redis, metrics),
    llm=ChatModelClient.from_settings(metrics, settings),
    tracker=tracker,
    summarize_history=settings.history_summary_enabled,
)

app = create_app(
    metrics=metrics,
    assistant=assistant,
    store=store,
    tokens=TokenValidator(settings.jwt_secret),
    tracker=tracker,
    shutdown_timeout=settings.shutdown_timeout,
    on_shutdown=[redis.aclose],
)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
