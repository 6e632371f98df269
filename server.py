"""HTTP endpoints for transcription and annotation.

The services are built once per app and shared by every request, so the
admission gates and the annotation cache are process-wide.
"""

from __future__ import annotations

import os
from typing import Any, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from annotation import AnnotationClient
from config import resolve_api_key
from errors import ERROR_MESSAGES, INTERNAL_ERROR
from interfaces import Annotator, Transcriber
from models import AudioChunk
from transcription import TranscriptionClient

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000


def create_app(
    transcriber: Optional[Transcriber] = None,
    annotator: Optional[Annotator] = None,
) -> FastAPI:
    app = FastAPI(title="Live Gloss")
    app.state.transcriber = transcriber or TranscriptionClient()
    app.state.annotator = annotator or AnnotationClient()

    @app.get("/api/health")
    def health(request: Request) -> dict[str, Any]:
        configured = getattr(request.app.state.transcriber, "api_key", "")
        return {"status": "ok", "credential_configured": bool(resolve_api_key(configured))}

    @app.post("/api/transcribe")
    async def transcribe(request: Request) -> JSONResponse:
        # A plain string under "audio" is treated the same as no file.
        form = await request.form()
        audio = form.get("audio")
        if not isinstance(audio, UploadFile):
            return JSONResponse({"error": "No audio file provided"}, status_code=400)
        try:
            data = await audio.read()
            chunk = AudioChunk(data=data, encoding=audio.content_type or "audio/webm")
            logger.info(f"Transcription request: {chunk.size} bytes, {chunk.encoding}")
            result = await run_in_threadpool(request.app.state.transcriber.transcribe, chunk)
        except Exception as exc:
            logger.exception("Transcription endpoint failed")
            return JSONResponse(
                {"error": ERROR_MESSAGES[INTERNAL_ERROR], "details": str(exc)}, status_code=500
            )
        return JSONResponse(result.to_payload(), status_code=result.status, headers=result.headers())

    @app.post("/api/annotate")
    async def annotate(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError:
            body = None
        text = body.get("text") if isinstance(body, dict) else None
        try:
            result = await run_in_threadpool(request.app.state.annotator.annotate, text)
        except Exception as exc:
            logger.exception("Annotation endpoint failed")
            return JSONResponse({"error": str(exc), "annotations": []}, status_code=500)
        return JSONResponse(result.to_payload(), status_code=result.status, headers=result.headers())

    return app


def main() -> None:
    import uvicorn

    load_dotenv()
    host = os.getenv("LIVE_GLOSS_HOST", DEFAULT_HOST)
    port = int(os.getenv("LIVE_GLOSS_PORT", str(DEFAULT_PORT)))
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
