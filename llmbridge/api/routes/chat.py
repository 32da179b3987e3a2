"""Chat endpoint: admit the request, then stream chunk SSE back."""

import logging
from typing import Callable, Optional

from fastapi import Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse, StreamingResponse
from starlette.background import BackgroundTask, BackgroundTasks

from ...core.exceptions import (
    ForbiddenError,
    InvalidRequestError,
    ProviderDisabledError,
)
from ...core.registry import get_gate, get_router
from ...logging import RequestLogRecorder, is_disk_logging_enabled
from ...usage_metrics import USAGE_COUNTERS

logger = logging.getLogger("llmbridge")

GENERIC_ERROR_MESSAGE = "Error processing your request"


def _attach_finish_task(response: Response, finish: Callable[[], None]) -> None:
    existing = getattr(response, "background", None)
    if existing is None:
        response.background = BackgroundTask(finish)
        return

    tasks = BackgroundTasks()
    if isinstance(existing, BackgroundTasks):
        for task in existing.tasks:
            tasks.add_task(task.func, *task.args, **task.kwargs)
    else:
        tasks.add_task(existing.func, *existing.args, **existing.kwargs)
    tasks.add_task(finish)
    response.background = tasks


def _invalid_request_response(exc: InvalidRequestError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "message": exc.message,
                "type": "invalid_request_error",
                "code": exc.code,
            }
        },
    )


async def handle_chat_request(request: Request) -> Response:
    """Serve ``POST /api/chat``.

    Gate rejections come back as plain responses before any stream is opened.
    Once a streaming response has been returned, every failure is reported
    inside the stream instead.
    """
    logger.info("Handling %s request to %s", request.method, request.url.path)
    tracker = USAGE_COUNTERS.start_request()
    body = await request.body()
    request_log = RequestLogRecorder(
        "unknown", request.url.path, enabled=is_disk_logging_enabled()
    )
    request_log.record_request(request.method, request.headers, body)

    gate = get_gate()
    try:
        chat_request = gate.admit(
            body,
            referer=request.headers.get("referer"),
            model_selection=request.cookies.get(gate.model_cookie),
            search_mode=request.cookies.get(gate.search_mode_cookie),
        )
    except (ForbiddenError, ProviderDisabledError, InvalidRequestError) as exc:
        logger.warning("Rejected chat request (%s): %s", exc.status_code, exc.message)
        request_log.record_error(exc.message, error_type="rejected")
        request_log.finalize("rejected")
        tracker.reject(exc.status_code)
        if isinstance(exc, InvalidRequestError):
            return _invalid_request_response(exc)
        return PlainTextResponse(exc.message, status_code=exc.status_code)

    request_log.model_name = chat_request.model.id
    request_log.session_id = chat_request.chat_id
    logger.info(
        "Processing chat request for model %s with %d messages",
        chat_request.model.id,
        len(chat_request.messages),
    )

    router = get_router()
    response: Optional[Response] = None
    try:
        strategy, _ = router.select(chat_request)
        USAGE_COUNTERS.record_strategy(strategy)
        response = await router.route(
            chat_request,
            disconnect_checker=request.is_disconnected,
            request_log=request_log,
        )
    except Exception as exc:
        logger.error("Error processing chat request for model %s: %s", chat_request.model.id, exc)
        if not request_log.finalized:
            request_log.record_error(str(exc))
            request_log.finalize("error")
        tracker.finish()
        return PlainTextResponse(GENERIC_ERROR_MESSAGE, status_code=500)

    if isinstance(response, StreamingResponse):
        _attach_finish_task(response, tracker.finish)
        return response
    if not request_log.finalized:
        request_log.finalize("success" if response.status_code < 400 else "error")
    tracker.finish()
    return response


async def chat(request: Request) -> Response:
    """Chat endpoint.

    POST /api/chat
    """
    return await handle_chat_request(request)
