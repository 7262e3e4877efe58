"""Unit tests for text extraction.

Files are served with httpx.MockTransport and the vision model is a mocked
AsyncOpenAI, so no test touches the network.
"""

import base64
import io
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import docx
import httpx
import pytest
from openai import APIConnectionError

from gapguard.config import Settings
from gapguard.docs.extract import (
    DOCX_MIME,
    PDF_MIME,
    DocxTextExtractor,
    MimeDispatchExtractor,
    UnconfiguredVisionExtractor,
    VisionTextExtractor,
    fetch_file,
    get_text_extractor,
    parse_docx,
)
from gapguard.errors import ExtractionError


def _docx_bytes() -> bytes:
    document = docx.Document()
    document.add_paragraph("Employment Verification")
    document.add_paragraph("   ")
    document.add_paragraph("Start date: 2024-03-01")
    table = document.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "Employee"
    table.rows[0].cells[1].text = "Jane Doe"
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def _serving(content: bytes, status_code: int = 200) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status_code, content=content)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _vision_sdk(content: str | None = "Extracted text", error: Exception | None = None) -> MagicMock:
    sdk = MagicMock()
    if error is not None:
        sdk.chat.completions.create = AsyncMock(side_effect=error)
    else:
        response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])
        sdk.chat.completions.create = AsyncMock(return_value=response)
    return sdk


class RecordingExtractor:
    def __init__(self, label: str) -> None:
        self.label = label
        self.calls: list[str] = []

    async def extract(self, file_url: str, mime_type: str) -> str:
        self.calls.append(mime_type)
        return self.label


def test_parse_docx_reads_paragraphs_and_tables() -> None:
    text = parse_docx(_docx_bytes())

    assert text.splitlines() == [
        "Employment Verification",
        "Start date: 2024-03-01",
        "Employee | Jane Doe",
    ]


def test_parse_docx_rejects_garbage() -> None:
    with pytest.raises(ExtractionError, match="Unreadable DOCX"):
        parse_docx(b"definitely not a zip archive")


@pytest.mark.asyncio
async def test_fetch_file_returns_body() -> None:
    async with _serving(b"%PDF-1.7") as client:
        assert await fetch_file("https://files.example.com/a.pdf", client) == b"%PDF-1.7"


@pytest.mark.asyncio
async def test_fetch_file_maps_http_errors() -> None:
    async with _serving(b"missing", status_code=404) as client:
        with pytest.raises(ExtractionError, match="HTTP 404"):
            await fetch_file("https://files.example.com/a.pdf", client)


@pytest.mark.asyncio
async def test_fetch_file_maps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectTimeout("timed out", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(ExtractionError, match="ConnectTimeout"):
            await fetch_file("https://files.example.com/a.pdf", client)


@pytest.mark.asyncio
async def test_docx_extractor_fetches_and_parses() -> None:
    async with _serving(_docx_bytes()) as client:
        text = await DocxTextExtractor(client=client).extract("https://files/offer.docx", DOCX_MIME)

    assert "Employee | Jane Doe" in text


@pytest.mark.asyncio
async def test_vision_extractor_sends_images_as_data_urls() -> None:
    sdk = _vision_sdk("PASSPORT\nP<USADOE<<JANE")

    async with _serving(b"\x89PNG") as client:
        extractor = VisionTextExtractor(sdk, model="gpt-4o-mini", client=client)
        text = await extractor.extract("https://files/passport.png", "image/png")

    assert text == "PASSPORT\nP<USADOE<<JANE"
    content = sdk.chat.completions.create.call_args.kwargs["messages"][0]["content"]
    assert content[1] == {
        "type": "image_url",
        "image_url": {"url": "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()},
    }


@pytest.mark.asyncio
async def test_vision_extractor_sends_pdfs_as_file_parts() -> None:
    sdk = _vision_sdk()

    async with _serving(b"%PDF-1.7") as client:
        await VisionTextExtractor(sdk, client=client).extract("https://files/lease.pdf", PDF_MIME)

    part = sdk.chat.completions.create.call_args.kwargs["messages"][0]["content"][1]
    assert part["type"] == "file"
    assert part["file"]["file_data"].startswith("data:application/pdf;base64,")


@pytest.mark.asyncio
async def test_vision_extractor_wraps_model_errors() -> None:
    error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
    sdk = _vision_sdk(error=error)

    async with _serving(b"\x89PNG") as client:
        with pytest.raises(ExtractionError, match="Vision extraction failed"):
            await VisionTextExtractor(sdk, client=client).extract("https://files/a.png", "image/png")


@pytest.mark.asyncio
async def test_vision_extractor_rejects_missing_content() -> None:
    async with _serving(b"\x89PNG") as client:
        with pytest.raises(ExtractionError, match="missing text"):
            await VisionTextExtractor(_vision_sdk(None), client=client).extract(
                "https://files/a.png", "image/png"
            )


@pytest.mark.asyncio
async def test_dispatch_routes_by_mime_type() -> None:
    structured = RecordingExtractor("docx text")
    ocr = RecordingExtractor("ocr text")
    extractor = MimeDispatchExtractor(structured, ocr)

    assert await extractor.extract("u", DOCX_MIME) == "docx text"
    assert await extractor.extract("u", PDF_MIME) == "ocr text"
    assert await extractor.extract("u", "image/jpeg") == "ocr text"
    assert structured.calls == [DOCX_MIME]
    assert ocr.calls == [PDF_MIME, "image/jpeg"]


@pytest.mark.asyncio
async def test_factory_without_key_cannot_ocr() -> None:
    extractor = get_text_extractor(Settings(openai_api_key=None))

    with pytest.raises(ExtractionError, match="No OCR backend"):
        await extractor.extract("https://files/a.png", "image/png")

    with pytest.raises(ExtractionError):
        await UnconfiguredVisionExtractor().extract("https://files/a.pdf", PDF_MIME)
