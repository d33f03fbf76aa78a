import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool

from coach.energy import CHAT_COST, EnergyGate, review_cost
from coach.errors import PersistenceFailure, UpstreamFailure
from coach.history import SessionHistory, session_key
from coach.llm import ChatModelClient
from coach.models import ChatRequest, ReviewAnalysisRequest, Scene
from coach.prompts import chat_messages, review_messages, summary_messages
from coach.store import CoachStore
from coach.streaming import CoachStream, StreamState
from coach.tasks import TaskTracker

logger = logging.getLogger(__name__)

CHAT_ERROR = "生成内容时出错"
REVIEW_ERROR = "生成复盘分析时出错"

CompletionHook = Callable[[str], Awaitable[None]]


class CoachAssistant:
    """Runs one coach request from admission to the last streamed chunk.

    ``chat`` and ``analyze_review`` do all their synchronous checks first
    (validation, energy, lookups) and raise before anything is streamed. They
    then return a ``CoachStream`` whose producer runs as a tracked task:
    chunks from the model are relayed through the stream's channel as they
    arrive, and once the model finishes, any write-back is handed to its own
    tracked task so it never holds up the reader.
    """

    def __init__(self, metrics, store: CoachStore, history: SessionHistory, llm: ChatModelClient,
                 tracker: TaskTracker, energy: Optional[EnergyGate] = None, summarize_history: bool = False):
        self.metrics = metrics
        self.store = store
        self.history = history
        self.llm = llm
        self.tracker = tracker
        self.energy = energy or EnergyGate(store, metrics)
        self.summarize_history = summarize_history

    async def chat(self, user_id: str, request: ChatRequest) -> CoachStream:
        scene = request.resolved_scene
        await self.energy.admit(user_id, CHAT_COST)
        stream = CoachStream()

        key = session_key(user_id, scene)
        history_summary = await self.history.get(key)
        messages = chat_messages(scene, request.message, history_summary)
        stream.state = StreamState.PROMPT_BUILT

        on_complete = None
        if self.summarize_history and scene is Scene.EMOTION:
            async def on_complete(text: str):
                await self.remember(key, request.message, text, history_summary)

        logger.debug("chat for %s in scene %s, %d chars", user_id, scene.value, len(request.message))
        self._start(stream, messages, CHAT_ERROR, on_complete, name=f"chat:{key}")
        return stream

    async def analyze_review(self, user_id: str, request: ReviewAnalysisRequest) -> CoachStream:
        cost = review_cost(request.period)
        emotions = await run_in_threadpool(self.store.list_emotions, user_id, request.start_date, request.end_date)
        previous_summary = await run_in_threadpool(
            self.store.previous_review_summary, user_id, request.period, request.start_date
        )

        await self.energy.admit(user_id, cost)
        stream = CoachStream()

        messages = review_messages(request.period, request.time_records, emotions, previous_summary)
        stream.state = StreamState.PROMPT_BUILT
        logger.debug("review analysis for %s: %s with %d emotions", user_id, request.period, len(emotions))

        async def on_complete(text: str):
            await self.persist_review(user_id, request, text)

        self._start(stream, messages, REVIEW_ERROR, on_complete, name=f"review:{user_id}:{request.period}")
        return stream

    async def summarize(self, dialogue: str, history_summary: Optional[str] = None) -> str:
        summary = await self.llm.generate(summary_messages(dialogue, history_summary))
        return summary.strip()

    async def remember(self, key: str, message: str, response: str, history_summary: Optional[str] = None):
        dialogue = f"用户: {message}\n教练: {response}"
        try:
            summary = await self.summarize(dialogue, history_summary)
        except UpstreamFailure as e:
            logger.warning("could not summarize session %s: %s", key, e)
            return
        if summary:
            await self.history.put(key, summary)

    async def persist_review(self, user_id: str, request: ReviewAnalysisRequest, summary: str):
        if not summary:
            # still stored, the window always holds the latest generation
            logger.warning("empty review analysis for %s/%s", user_id, request.period)
        try:
            await run_in_threadpool(
                self.store.upsert_review_analysis,
                user_id, request.period, request.start_date, request.end_date, summary,
            )
        except PersistenceFailure as e:
            self.metrics.incr("errors.persist_review")
            logger.error("could not store review analysis for %s/%s: %s", user_id, request.period, e)
            return
        self.metrics.incr("success.persist_review")

    def _start(self, stream: CoachStream, messages: List[Dict[str, str]], error_prefix: str,
               on_complete: Optional[CompletionHook], name: str):
        stream.producer = self.tracker.spawn(
            self._produce(stream, messages, error_prefix, on_complete, name), name=name
        )

    async def _produce(self, stream: CoachStream, messages, error_prefix: str,
                       on_complete: Optional[CompletionHook], name: str):
        start_time = time.time()
        stream.state = StreamState.STREAMING

        async def relay(chunk: str):
            await stream.channel.send(chunk)
            stream.chunks.append(chunk)

        try:
            await self.llm.generate(messages, on_chunk=relay)
        except Exception as e:
            # whatever reached the reader stays there, we only append the error
            stream.state = StreamState.FAILED
            stream.error = e
            logger.error("generation %s failed: %s", name, e)
            await stream.channel.send(f"{error_prefix}: {e}")
        except asyncio.CancelledError:
            stream.state = StreamState.FAILED
            logger.info("generation %s cancelled after %d chunks", name, len(stream.chunks))
            raise
        else:
            stream.state = StreamState.COMPLETED
            self.metrics.timing("stream.timed", (time.time() - start_time) * 1000)
            if on_complete is not None:
                self.tracker.spawn(on_complete(stream.text), name=f"{name}:complete")
        finally:
            stream.channel.close()
