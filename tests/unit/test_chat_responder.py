"""Unit tests for the retrieval-augmented chat responder."""

from uuid import uuid4

import pytest

from gapguard.chat.responder import NO_RELEVANT_INFORMATION, ChatResponder
from gapguard.db.context import RequestContext
from gapguard.db.inmemory import InMemoryChatRepository, InMemoryDocumentRepository
from gapguard.docs.extract import PDF_MIME
from gapguard.embeddings.provider import EmbeddingMode
from gapguard.errors import NotFoundError, ValidationError
from gapguard.models.chat import ChatQuery, ChunkMatch
from gapguard.models.documents import IngestRequest

PASSPORT_TEXT = "Passport number X1234567 expires on 2031-04-30"
LEASE_TEXT = "Residential lease for apartment 4B runs through December"


class RecordingLLM:
    def __init__(self) -> None:
        self.calls: list[tuple[str, list[ChunkMatch]]] = []

    async def generate_answer(self, *, question: str, matches: list[ChunkMatch]) -> str:
        self.calls.append((question, matches))
        return f"answer from {len(matches)} passages"


async def _index(
    documents: InMemoryDocumentRepository,
    embedder,
    ctx: RequestContext,
    file_name: str,
    texts: list[str],
    *,
    finished: bool = True,
):
    document = await documents.upsert(
        ctx, IngestRequest(file_url=f"https://files/{file_name}", file_name=file_name, mime_type=PDF_MIME)
    )
    for index, text in enumerate(texts):
        vector = await embedder.embed(text, EmbeddingMode.INDEX)
        await documents.add_chunk(
            ctx, document.document_id, index, text, vector, attempt_id=document.attempt_id
        )
    if finished:
        await documents.mark_valid(ctx, document.document_id, attempt_id=document.attempt_id)
    return document


@pytest.fixture
def documents() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def chats() -> InMemoryChatRepository:
    return InMemoryChatRepository()


@pytest.fixture
def llm() -> RecordingLLM:
    return RecordingLLM()


@pytest.fixture
def embedder(make_embedder):
    return make_embedder()


@pytest.fixture
def responder(documents, chats, embedder, llm) -> ChatResponder:
    return ChatResponder(
        documents=documents, chats=chats, embedder=embedder, llm=llm, top_k=5, min_similarity=0.5
    )


@pytest.mark.asyncio
async def test_answer_is_grounded_on_matching_chunks(
    ctx: RequestContext, documents, chats, embedder, llm, responder
) -> None:
    document = await _index(documents, embedder, ctx, "passport.pdf", [PASSPORT_TEXT, LEASE_TEXT])
    session = await responder.start_session(ctx, "Travel")

    answer = await responder.answer(ctx, ChatQuery(question=PASSPORT_TEXT, session_id=session.session_id))

    assert answer.answer == f"answer from {len(answer.sources)} passages"
    assert answer.sources[0].document_id == document.document_id
    assert answer.sources[0].chunk_index == 0
    assert answer.sources[0].similarity == pytest.approx(1.0)
    assert all(s.similarity >= 0.5 for s in answer.sources)

    assert len(llm.calls) == 1
    assert embedder.calls[-1] == (PASSPORT_TEXT, EmbeddingMode.QUERY)

    messages = await chats.list_messages(ctx, session.session_id)
    assert [(m.position, m.role) for m in messages] == [(0, "user"), (1, "assistant")]
    assert messages[1].content == answer.answer


@pytest.mark.asyncio
async def test_no_match_returns_fixed_answer_without_model_call(
    ctx: RequestContext, documents, chats, embedder, llm, responder
) -> None:
    await _index(documents, embedder, ctx, "lease.pdf", [LEASE_TEXT])
    session = await responder.start_session(ctx)

    answer = await responder.answer(
        ctx, ChatQuery(question="quantum chromodynamics lecture", session_id=session.session_id)
    )

    assert answer.answer == NO_RELEVANT_INFORMATION
    assert answer.sources == []
    assert llm.calls == []

    messages = await chats.list_messages(ctx, session.session_id)
    assert [m.content for m in messages] == ["quantum chromodynamics lecture", NO_RELEVANT_INFORMATION]


@pytest.mark.asyncio
async def test_other_users_chunks_are_never_retrieved(
    ctx: RequestContext, other_ctx: RequestContext, documents, embedder, llm, responder
) -> None:
    await _index(documents, embedder, other_ctx, "passport.pdf", [PASSPORT_TEXT])
    session = await responder.start_session(ctx)

    answer = await responder.answer(ctx, ChatQuery(question=PASSPORT_TEXT, session_id=session.session_id))

    assert answer.sources == []
    assert llm.calls == []


@pytest.mark.asyncio
async def test_chunks_of_processing_documents_are_not_searchable(
    ctx: RequestContext, documents, embedder, responder
) -> None:
    await _index(documents, embedder, ctx, "passport.pdf", [PASSPORT_TEXT], finished=False)
    session = await responder.start_session(ctx)

    answer = await responder.answer(ctx, ChatQuery(question=PASSPORT_TEXT, session_id=session.session_id))

    assert answer.answer == NO_RELEVANT_INFORMATION


@pytest.mark.asyncio
async def test_top_k_caps_sources(ctx: RequestContext, documents, chats, embedder, llm) -> None:
    await _index(documents, embedder, ctx, "copies.pdf", [PASSPORT_TEXT] * 4)
    responder = ChatResponder(
        documents=documents, chats=chats, embedder=embedder, llm=llm, top_k=2, min_similarity=0.5
    )
    session = await responder.start_session(ctx)

    answer = await responder.answer(ctx, ChatQuery(question=PASSPORT_TEXT, session_id=session.session_id))

    # Equal scores fall back to chunk order
    assert [s.chunk_index for s in answer.sources] == [0, 1]


@pytest.mark.asyncio
async def test_session_of_another_user_is_not_found(
    ctx: RequestContext, other_ctx: RequestContext, responder, embedder
) -> None:
    session = await responder.start_session(other_ctx)

    with pytest.raises(NotFoundError):
        await responder.answer(ctx, ChatQuery(question="hello there", session_id=session.session_id))

    with pytest.raises(NotFoundError):
        await responder.answer(ctx, ChatQuery(question="hello there", session_id=uuid4()))

    assert embedder.calls == []


@pytest.mark.asyncio
async def test_blank_question_is_rejected(ctx: RequestContext, responder) -> None:
    session = await responder.start_session(ctx)

    with pytest.raises(ValidationError):
        await responder.answer(ctx, ChatQuery(question="   ", session_id=session.session_id))


@pytest.mark.asyncio
async def test_session_titles_default_and_truncate(ctx: RequestContext, responder) -> None:
    assert (await responder.start_session(ctx)).title == "New chat"
    assert (await responder.start_session(ctx, "  ")).title == "New chat"
    assert (await responder.start_session(ctx, "x" * 80)).title == "x" * 60
