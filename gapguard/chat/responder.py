"""Chat responder - retrieval-augmented answers over a user's own documents."""

import logging

from gapguard.db.context import RequestContext
from gapguard.db.repositories import ChatRepository, DocumentRepository
from gapguard.docs.retriever import search_chunks
from gapguard.embeddings.provider import EmbeddingMode, EmbeddingProvider
from gapguard.errors import NotFoundError, ValidationError
from gapguard.llm.client import LLMClient
from gapguard.models.chat import ChatAnswer, ChatQuery, ChatSession
from gapguard.utils.metrics import record_chat_answer

logger = logging.getLogger(__name__)

NO_RELEVANT_INFORMATION = (
    "I couldn't find any relevant information in your documents to answer that question."
)

# Session titles are derived from the first question
_TITLE_MAX_CHARS = 60


class ChatResponder:
    """Answers questions from the caller's indexed chunks."""

    def __init__(
        self,
        *,
        documents: DocumentRepository,
        chats: ChatRepository,
        embedder: EmbeddingProvider,
        llm: LLMClient,
        top_k: int = 5,
        min_similarity: float = 0.5,
    ) -> None:
        self._documents = documents
        self._chats = chats
        self._embedder = embedder
        self._llm = llm
        self._top_k = top_k
        self._min_similarity = min_similarity

    async def start_session(self, ctx: RequestContext, title: str | None = None) -> ChatSession:
        """Open a new chat session for the caller."""
        title = (title or "").strip() or "New chat"
        return await self._chats.create_session(ctx, title[:_TITLE_MAX_CHARS])

    async def answer(self, ctx: RequestContext, query: ChatQuery) -> ChatAnswer:
        """Answer one question and append both turns to the session.

        Args:
            ctx: Request context (all retrieval is scoped to this user)
            query: Question and target session

        Returns:
            ChatAnswer with the answer text and the chunks it was grounded on

        Raises:
            ValidationError: Blank question
            NotFoundError: Session missing or owned by another user
            EmbeddingError: Query could not be embedded
        """
        question = query.question.strip()
        if not question:
            raise ValidationError("question must not be empty", stage="chat")

        session = await self._chats.get_session(ctx, query.session_id)
        if session is None:
            raise NotFoundError(f"Chat session {query.session_id} not found", stage="chat")

        query_vector = await self._embedder.embed(question, EmbeddingMode.QUERY)
        matches = await search_chunks(
            ctx=ctx,
            query_vector=query_vector,
            documents=self._documents,
            top_k=self._top_k,
            min_similarity=self._min_similarity,
        )

        if matches:
            answer = await self._llm.generate_answer(question=question, matches=matches)
        else:
            logger.info(f"No chunk cleared similarity {self._min_similarity} for session {session.session_id}")
            answer = NO_RELEVANT_INFORMATION
        record_chat_answer(grounded=bool(matches))

        await self._chats.append_messages(
            ctx, session.session_id, [("user", question), ("assistant", answer)]
        )
        return ChatAnswer(answer=answer, sources=matches)
