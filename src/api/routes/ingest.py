"""Document upload endpoint with Server-Sent Events progress."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from src.api.deps import Ingestion
from src.rag.ingestion import IngestionResult, IngestionService
from src.rag.page_extractor import PageImage

logger = logging.getLogger(__name__)

router = APIRouter()


def sse_event(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def parse_pages(entries: list[str]) -> list[PageImage]:
    """Parse the JSON-encoded page fields of a multipart upload."""
    try:
        return [PageImage.model_validate_json(entry) for entry in entries]
    except ValidationError as e:
        raise ValueError(f"Invalid or missing page data received from client: {e}") from e


async def ingestion_events(
    ingestion: IngestionService,
    content: bytes | None,
    filename: str | None,
    content_type: str | None,
    pages: list[str] | None,
) -> AsyncIterator[str]:
    """Run ingestion and yield progress events, then one terminal event.

    Terminal event is either
    {"type": "complete", "result": {...}} or {"type": "error", "message": "..."}.
    """
    queue: asyncio.Queue[dict | None] = asyncio.Queue()

    async def progress(message: str) -> None:
        await queue.put({"type": "progress", "message": message})

    async def run() -> None:
        try:
            result: IngestionResult
            if content is not None:
                result = await ingestion.ingest_file(
                    content, filename or "unnamed", content_type, progress
                )
            elif pages:
                result = await ingestion.ingest_pages(parse_pages(pages), progress)
            else:
                raise ValueError("No file or page data provided in the request.")

            await queue.put(
                {
                    "type": "complete",
                    "result": {
                        "success": result.success,
                        "title": result.title,
                        "originalFilename": result.original_filename,
                        "key": result.key,
                    },
                }
            )
        except Exception as e:
            logger.error(f"[Ingest] Failed to process upload {filename or ''}: {e}", exc_info=True)
            await queue.put({"type": "error", "message": str(e) or "Unknown error processing file"})
        finally:
            await queue.put(None)

    task = asyncio.create_task(run())
    try:
        while (event := await queue.get()) is not None:
            yield sse_event(event)
    finally:
        # Client went away; whatever was already stored stays stored
        if not task.done():
            task.cancel()


@router.post("/enrich")
async def enrich(
    ingestion: Ingestion,
    file: UploadFile | None = File(None),
    pages: list[str] | None = Form(None),
):
    """Upload an XLSX/DOCX file or pre-rendered PDF pages.

    Streams progress as Server-Sent Events:
    - data: {"type": "progress", "message": "..."}
    - data: {"type": "complete", "result": {"success", "title", "originalFilename", "key"}}
    - data: {"type": "error", "message": "..."}
    """
    content = None
    filename = None
    content_type = None
    if file is not None:
        content = await file.read()
        filename = file.filename
        content_type = file.content_type

    return StreamingResponse(
        ingestion_events(ingestion, content, filename, content_type, pages),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
