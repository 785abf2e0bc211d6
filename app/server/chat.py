from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from loguru import logger

from app.models import AnalyzeRequest, FeedbackResponse, HealthCheckResponse
from app.server.middleware import get_session_id
from app.services import BackendError, OllamaClient, RelayService, get_relay_service

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    # Stop nginx from buffering the token stream; harmless without a proxy
    "X-Accel-Buffering": "no",
}

router = APIRouter()


@router.post("/analyze-screenshot", response_model=FeedbackResponse)
async def analyze_screenshot(
    request: AnalyzeRequest,
    session_id: str = Depends(get_session_id),
    relay: RelayService = Depends(get_relay_service),
):
    answer = await relay.relay(request.message, request.image_base64, session_id)
    return FeedbackResponse(feedback=answer)


@router.post("/analyze-screenshot-stream")
async def analyze_screenshot_stream(
    request: AnalyzeRequest,
    session_id: str = Depends(get_session_id),
    relay: RelayService = Depends(get_relay_service),
):
    chunks = relay.relay_stream(request.message, request.image_base64, session_id)

    # Pull the first chunk before committing to a streaming response, so a failure
    # that happens before anything is sent still gets a proper error status.
    try:
        first = await anext(chunks)
    except StopAsyncIteration:
        first = ""

    async def generate_stream() -> AsyncGenerator[str]:
        try:
            if first:
                yield first
            async for chunk in chunks:
                yield chunk
        except BackendError as e:
            # Headers are already sent; the consumer only sees the stream end
            logger.error(f"Stream aborted after output was sent ({e.kind}): {e}")
        finally:
            await chunks.aclose()

    return StreamingResponse(generate_stream(), media_type="text/plain", headers=STREAM_HEADERS)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def reset_session(
    session_id: str,
    relay: RelayService = Depends(get_relay_service),
):
    if not await relay.sessions.reset(session_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found.")


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(relay: RelayService = Depends(get_relay_service)):
    client: OllamaClient = relay.client
    try:
        version = await client.ping()
    except BackendError as e:
        logger.warning(f"Health check failed: {e}")
        return HealthCheckResponse(ok=False, sessions=len(relay.sessions), error=str(e))
    return HealthCheckResponse(ok=True, backend=version, sessions=len(relay.sessions))
