import logging
import time
from typing import Awaitable, Callable, Iterable, Type, TypeVar

import pydantic
from fastapi import Depends, FastAPI
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.responses import JSONResponse, StreamingResponse

from coach.assistant import CoachAssistant
from coach.auth import TokenValidator
from coach.errors import AdmissionDenied, AuthenticationFailed, RequestValidationFailed, UserNotFound
from coach.models import ChatRequest, ReviewAnalysisRequest, ReviewWindow
from coach.store import CoachStore
from coach.streaming import CoachStream
from coach.tasks import TaskTracker

logger = logging.getLogger(__name__)

STREAM_HEADERS = {
    # set explicitly so no charset parameter is appended
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

RequestModel = TypeVar("RequestModel", bound=pydantic.BaseModel)


def invalid(message: str) -> RequestValidationFailed:
    return RequestValidationFailed(f"Invalid request: {message}")


async def parse_body(req: Request, model: Type[RequestModel]) -> RequestModel:
    try:
        body = await req.json()
    except ValueError:
        raise invalid("body must be a JSON object") from None
    try:
        return model.model_validate(body)
    except pydantic.ValidationError as e:
        raise invalid(str(e)) from None


async def relay(stream: CoachStream):
    # the producer owns the channel, the writer only reads and, when the
    # client goes away, asks the producer to stop
    try:
        async for chunk in stream:
            yield chunk
    finally:
        await stream.aclose()


def stream_response(stream: CoachStream) -> StreamingResponse:
    return StreamingResponse(relay(stream), media_type="text/event-stream", headers=STREAM_HEADERS)


def create_app(metrics, assistant: CoachAssistant, store: CoachStore, tokens: TokenValidator,
               tracker: TaskTracker, shutdown_timeout: float = 30.0,
               on_shutdown: Iterable[Callable[[], Awaitable[None]]] = ()) -> FastAPI:
    app = FastAPI(title="Coach API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"]
    )

    cleanups = list(on_shutdown)

    def current_user(req: Request) -> str:
        return tokens.user_id(req.headers.get("Authorization", ""))

    @app.exception_handler(AuthenticationFailed)
    async def _unauthorized(req: Request, e: AuthenticationFailed):
        return JSONResponse(status_code=401, content={"error": str(e)})

    @app.exception_handler(RequestValidationFailed)
    async def _bad_request(req: Request, e: RequestValidationFailed):
        return JSONResponse(status_code=400, content={"error": str(e)})

    @app.exception_handler(AdmissionDenied)
    async def _out_of_energy(req: Request, e: AdmissionDenied):
        return JSONResponse(status_code=403, content={"error": str(e), "remainingEnergy": e.balance})

    @app.exception_handler(UserNotFound)
    async def _unknown_user(req: Request, e: UserNotFound):
        return JSONResponse(status_code=404, content={"error": "用户未找到"})

    @app.get("/ping")
    def _ping():
        return {"message": "pong"}

    @app.post("/api/v1/chat")
    async def _chat(req: Request, user_id: str = Depends(current_user)):
        metrics.incr("chat")
        chat_request = await parse_body(req, ChatRequest)
        stream = await assistant.chat(user_id, chat_request)
        return stream_response(stream)

    @app.post("/api/v1/analysis")
    async def _analyze_review(req: Request, user_id: str = Depends(current_user)):
        metrics.incr("analysis")
        review_request = await parse_body(req, ReviewAnalysisRequest)
        stream = await assistant.analyze_review(user_id, review_request)
        return stream_response(stream)

    @app.get("/api/v1/review-analyses")
    async def _get_review_analysis(req: Request, user_id: str = Depends(current_user)):
        try:
            window = ReviewWindow.model_validate(dict(req.query_params))
        except pydantic.ValidationError as e:
            raise invalid(str(e)) from None

        analysis = await run_in_threadpool(
            store.get_review_analysis, user_id, window.period, window.start_date, window.end_date
        )
        if analysis is None:
            return JSONResponse(status_code=404, content={"error": "未找到对应的复盘记录"})
        return {"data": analysis.to_json()}

    @app.get("/api/v1/user/energy")
    async def _get_energy(user_id: str = Depends(current_user)):
        energy = await run_in_threadpool(store.get_energy, user_id)
        return {"energy": energy}

    @app.on_event("shutdown")
    async def _drain_background_tasks():
        start_time = time.time()
        cancelled = await tracker.drain(shutdown_timeout)
        logger.info("background tasks drained in %.2fs, %d cancelled", time.time() - start_time, cancelled)
        for cleanup in cleanups:
            await cleanup()

    return app
