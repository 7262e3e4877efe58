"""Text extraction from uploaded files.

DOCX files are parsed locally with python-docx. PDFs and images go to a vision
model that performs OCR. Any failure surfaces as ExtractionError; extraction is
never retried automatically.
"""

import asyncio
import base64
import io
import logging
from typing import Protocol

import docx
import httpx
from openai import AsyncOpenAI, OpenAIError

from gapguard.config import Settings
from gapguard.errors import ExtractionError

logger = logging.getLogger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
PDF_MIME = "application/pdf"
IMAGE_MIMES = frozenset(
    {"image/png", "image/jpeg", "image/jpg", "image/webp", "image/gif", "image/tiff"}
)
SUPPORTED_MIME_TYPES = frozenset({DOCX_MIME, PDF_MIME}) | IMAGE_MIMES

_VISION_PROMPT = (
    "Extract all text from this document. If it is an image, perform OCR. "
    "Do not provide any commentary, summary, or formatting. "
    "Return only the raw, full text content."
)


class TextExtractor(Protocol):
    """Protocol for text extractor implementations."""

    async def extract(self, file_url: str, mime_type: str) -> str:
        """Return the raw text of the file at ``file_url``.

        Raises:
            ExtractionError: File unreachable or unparseable
        """
        ...


async def fetch_file(url: str, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> bytes:
    """Download file bytes.

    Args:
        url: File URL
        client: Optional httpx client (for testing with mocks)
        timeout: Request timeout in seconds

    Returns:
        Response body

    Raises:
        ExtractionError: Transport failure or non-2xx response
    """
    close_client = False
    if client is None:
        client = httpx.AsyncClient(timeout=timeout)
        close_client = True

    try:
        response = await client.get(url)
    except httpx.HTTPError as e:
        raise ExtractionError(f"Failed to fetch file: {type(e).__name__}") from e
    finally:
        if close_client:
            await client.aclose()

    if response.status_code >= 300:
        raise ExtractionError(f"Failed to fetch file: HTTP {response.status_code}")

    return response.content


def parse_docx(content: bytes) -> str:
    """Pull paragraph and table text out of a DOCX payload."""
    try:
        document = docx.Document(io.BytesIO(content))
    except Exception as e:  # python-docx raises a mix of zipfile/KeyError/ValueError
        raise ExtractionError(f"Unreadable DOCX file: {type(e).__name__}") from e

    parts = [p.text for p in document.paragraphs if p.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))
    return "\n".join(parts)


class DocxTextExtractor:
    """Structured word-processor extractor."""

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 30.0) -> None:
        self._client = client
        self._timeout = timeout

    async def extract(self, file_url: str, mime_type: str) -> str:
        """Fetch and parse a DOCX file."""
        content = await fetch_file(file_url, self._client, self._timeout)
        text = await asyncio.to_thread(parse_docx, content)
        logger.info(f"DOCX extraction complete: {len(text)} characters")
        return text


class VisionTextExtractor:
    """OCR through an OpenAI vision-capable model."""

    def __init__(
        self,
        openai_client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize extractor.

        Args:
            openai_client: AsyncOpenAI instance
            model: Vision-capable model name
            client: Optional httpx client used to fetch the file
            timeout: File fetch timeout in seconds
        """
        self._openai = openai_client
        self._model = model
        self._client = client
        self._timeout = timeout

    async def extract(self, file_url: str, mime_type: str) -> str:
        """Fetch the file and ask the model for its full text."""
        content = await fetch_file(file_url, self._client, self._timeout)
        data_url = f"data:{mime_type};base64,{base64.b64encode(content).decode('ascii')}"

        if mime_type == PDF_MIME:
            file_part = {"type": "file", "file": {"filename": "document.pdf", "file_data": data_url}}
        else:
            file_part = {"type": "image_url", "image_url": {"url": data_url}}

        try:
            response = await self._openai.chat.completions.create(
                model=self._model,
                messages=[
                    {
                        "role": "user",
                        "content": [{"type": "text", "text": _VISION_PROMPT}, file_part],
                    }
                ],
                temperature=0.0,
            )
        except OpenAIError as e:
            raise ExtractionError(f"Vision extraction failed: {e}") from e

        text = response.choices[0].message.content if response.choices else None
        if not isinstance(text, str):
            raise ExtractionError("Vision model response is missing text content")

        logger.info(f"Vision extraction complete: {len(text)} characters")
        return text


class UnconfiguredVisionExtractor:
    """Placeholder used when no vision model is configured."""

    async def extract(self, file_url: str, mime_type: str) -> str:
        """Always fails: OCR needs a configured model."""
        raise ExtractionError(f"No OCR backend configured for {mime_type}")


class MimeDispatchExtractor:
    """Routes DOCX to the structured extractor and everything else to OCR."""

    def __init__(self, docx_extractor: TextExtractor, vision_extractor: TextExtractor) -> None:
        self._docx = docx_extractor
        self._vision = vision_extractor

    async def extract(self, file_url: str, mime_type: str) -> str:
        """Extract text with the extractor matching ``mime_type``."""
        if mime_type == DOCX_MIME:
            return await self._docx.extract(file_url, mime_type)
        return await self._vision.extract(file_url, mime_type)


def get_text_extractor(settings: Settings, client: httpx.AsyncClient | None = None) -> TextExtractor:
    """Factory function to build the extractor based on config.

    Returns:
        MimeDispatchExtractor with an OpenAI vision backend if an API key is
        configured, otherwise one whose OCR side always fails
    """
    timeout = settings.file_fetch_timeout_seconds
    docx_extractor = DocxTextExtractor(client=client, timeout=timeout)

    api_key = settings.openai_api_key
    vision: TextExtractor
    if api_key and api_key.get_secret_value():
        vision = VisionTextExtractor(
            AsyncOpenAI(api_key=api_key.get_secret_value()),
            model=settings.openai_model,
            client=client,
            timeout=timeout,
        )
    else:
        logger.warning("No OpenAI API key configured, PDF/image extraction is unavailable")
        vision = UnconfiguredVisionExtractor()

    return MimeDispatchExtractor(docx_extractor, vision)
