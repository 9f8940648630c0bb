"""Text extraction from rendered document pages using a vision model.

PDFs are rasterized by the client; each page arrives as a base64 image and
is transcribed to markdown. Pages are processed in bounded concurrent
batches, and batches run one after another.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx
from openai import AsyncOpenAI, OpenAIError
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.core.config import get_settings
from src.rag.extractors import ExtractionError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], Awaitable[None]]

PAGE_SEPARATOR = "\n\n---\n\n"

EXTRACTION_INSTRUCTION = (
    "Extract all text from this image, preserving formatting and structure. "
    "Return ONLY the extracted text in a markdown format, no commentary. "
    "For images or charts, do your best to describe the image or chart, "
    "maintaining as much information as possible. "
    "For tables, you can describe the table in markdown format. "
    "Do not prepend the markdown with ```markdown or ```."
)


class PageImage(BaseModel):
    """One rendered page as sent by the client."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page_num: int = Field(ge=1)
    image: str = Field(min_length=1)
    original_filename: str | None = None

    @property
    def data_url(self) -> str:
        """Image as a data URL, accepting either raw base64 or a data URL."""
        if self.image.startswith("data:"):
            return self.image
        return f"data:image/png;base64,{self.image}"


async def notify(progress: ProgressCallback | None, message: str) -> None:
    """Send a progress message; a failing listener never fails the pipeline."""
    logger.debug(f"[Progress] {message}")
    if progress is None:
        return
    try:
        await progress(message)
    except Exception as e:
        logger.warning(f"[Progress] Listener failed, continuing: {e}")


class PageImageExtractor:
    """Transcribes page images with a vision-capable chat model."""

    DEFAULT_MODEL = "gpt-4o"
    BATCH_SIZE = 20

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = DEFAULT_MODEL,
        batch_size: int = BATCH_SIZE,
    ):
        self.client = client
        self.model = model
        self.batch_size = batch_size

    async def extract_page(self, page: PageImage) -> str:
        """Transcribe a single page, prefixed with its page number.

        Raises:
            ExtractionError: The model call failed or returned nothing
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": EXTRACTION_INSTRUCTION},
                            {"type": "image_url", "image_url": {"url": page.data_url}},
                        ],
                    }
                ],
            )
        except OpenAIError as e:
            raise ExtractionError(
                f"Failed to extract page {page.page_num} of {page.original_filename or 'document'}: {e}"
            ) from e

        content = response.choices[0].message.content if response.choices else None
        if content is None:
            raise ExtractionError(
                f"Vision model returned no content for page {page.page_num} "
                f"of {page.original_filename or 'document'}"
            )

        return f"Page: {page.page_num}\n\n{content}"

    async def extract_pages(
        self,
        pages: list[PageImage],
        progress: ProgressCallback | None = None,
    ) -> str:
        """Transcribe all pages and join them in page-number order.

        Any page failure aborts the whole document.
        """
        if not pages:
            raise ExtractionError("No page data received for PDF processing.")

        ordered = sorted(pages, key=lambda p: p.page_num)
        total = len(ordered)
        await notify(progress, f"Processing {total} pages received from client...")

        page_contents: list[str] = []
        for batch_start in range(0, total, self.batch_size):
            batch = ordered[batch_start : batch_start + self.batch_size]
            await notify(
                progress,
                f"Extracting text from pages {batch_start + 1}-{batch_start + len(batch)} of {total}...",
            )
            logger.info(f"[PageExtractor] Batch of {len(batch)} pages starting at {batch_start + 1}")

            results = await asyncio.gather(
                *(self.extract_page(page) for page in batch), return_exceptions=True
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
                page_contents.append(result)

        await notify(progress, "Combining extracted text...")
        return PAGE_SEPARATOR.join(page_contents)


# Singleton instance
_page_extractor: PageImageExtractor | None = None


def get_page_extractor() -> PageImageExtractor:
    """Get or create the global PageImageExtractor instance."""
    global _page_extractor

    if _page_extractor is None:
        settings = get_settings()
        client = AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=httpx.Timeout(settings.openai_timeout, connect=30.0),
        )
        _page_extractor = PageImageExtractor(
            client=client,
            model=settings.vision_model,
            batch_size=settings.vision_batch_size,
        )

    return _page_extractor
