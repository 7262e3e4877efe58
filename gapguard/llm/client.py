"""LLM client for answers, document classification and rule suggestions.

Security: Reads API key from settings only, never hardcoded.
Provides deterministic fallback when no key present for testing.
"""

import json
import logging
import re
from datetime import date
from typing import Any, Protocol

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError as PydanticValidationError

from gapguard.config import Settings
from gapguard.errors import ClassificationError, LLMError
from gapguard.models.chat import ChunkMatch
from gapguard.models.documents import Classification
from gapguard.models.gaps import RuleSuggestion

logger = logging.getLogger(__name__)

# Upper bound on suggestions requested from the model
MAX_MODEL_SUGGESTIONS = 3


class LLMClient(Protocol):
    """Protocol for LLM client implementations."""

    async def generate_answer(self, *, question: str, matches: list[ChunkMatch]) -> str:
        """Answer a question from retrieved document chunks.

        Args:
            question: User's question
            matches: Retrieved chunks, most similar first (never empty)

        Returns:
            Natural-language answer
        """
        ...

    async def classify_document(self, *, text: str, file_name: str) -> Classification:
        """Infer category and dates from extracted document text.

        Raises:
            ClassificationError: Model unreachable or output unusable
        """
        ...

    async def suggest_rules(self, *, categories: list[str]) -> list[RuleSuggestion]:
        """Suggest up to three related document rules for known categories.

        Raises:
            LLMError: Model unreachable or output unusable
        """
        ...


# Keyword -> category table used by the stub classifier
_STUB_CATEGORIES = [
    ("passport", "Passport"),
    ("visa", "Visa"),
    ("driver", "Driver's License"),
    ("insurance", "Insurance Policy"),
    ("lease", "Lease Agreement"),
    ("w-2", "W-2"),
    ("i-9", "Form I-9"),
    ("license", "Professional License"),
]

# Category -> commonly paired documents for the stub suggester
_STUB_COMPANIONS = {
    "Passport": ["Visa", "Proof of Address"],
    "Visa": ["Passport", "Form I-94"],
    "Driver's License": ["Proof of Insurance", "Vehicle Registration"],
    "Lease Agreement": ["Renter's Insurance"],
    "W-2": ["Form I-9", "Direct Deposit Form"],
}

_ISO_DATE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")


def _find_dates(text: str) -> list[date]:
    found = []
    for year, month, day in _ISO_DATE.findall(text):
        try:
            found.append(date(int(year), int(month), int(day)))
        except ValueError:
            continue
    return found


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required)."""

    async def generate_answer(self, *, question: str, matches: list[ChunkMatch]) -> str:
        """Generate deterministic extractive answer."""
        best = matches[0].text
        preview = best if len(best) <= 300 else best[:297] + "..."
        return (
            f"Based on {len(matches)} matching passage(s) in your documents: {preview}\n\n"
            "*This is a stub response generated without LLM synthesis.*"
        )

    async def classify_document(self, *, text: str, file_name: str) -> Classification:
        """Classify by keyword and pick ISO dates out of the text."""
        haystack = f"{file_name} {text}".lower()
        category = next((label for keyword, label in _STUB_CATEGORIES if keyword in haystack), None)

        dates = sorted(_find_dates(text))
        expiry_date = dates[-1] if dates and "expir" in haystack else None
        issue_date = dates[0] if len(dates) > 1 or (dates and expiry_date is None) else None

        return Classification(
            category=category or "Other",
            expiry_date=expiry_date,
            issue_date=issue_date,
            confidence_score=0.5 if category else 0.1,
            reasoning="stub keyword classification",
        )

    async def suggest_rules(self, *, categories: list[str]) -> list[RuleSuggestion]:
        """Suggest companion documents from a fixed table."""
        suggestions: list[RuleSuggestion] = []
        for category in categories:
            for name in _STUB_COMPANIONS.get(category, []):
                if name in categories or any(s.rule_name == name for s in suggestions):
                    continue
                suggestions.append(
                    RuleSuggestion(rule_name=name, reason=f"Commonly required alongside {category}")
                )
        return suggestions[:MAX_MODEL_SUGGESTIONS]


class OpenAIClient:
    """OpenAI-backed LLM client."""

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", client: AsyncOpenAI | None = None):
        """Initialize OpenAI client.

        Args:
            api_key: OpenAI API key (read from settings)
            model: Model name to use (default: gpt-4o-mini for cost efficiency)
            client: Optional preconfigured AsyncOpenAI (for testing)
        """
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model

    async def generate_answer(self, *, question: str, matches: list[ChunkMatch]) -> str:
        """Generate answer using OpenAI API."""
        context = self._build_context(matches)

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._answer_system_prompt()},
                    {"role": "user", "content": f"{context}\n\n## Question\n{question}"},
                ],
                temperature=0.2,
                max_tokens=800,
            )
            answer = response.choices[0].message.content or ""

            if not answer.strip():
                logger.warning("OpenAI returned empty answer, using deterministic stub fallback")
                return await DeterministicStubClient().generate_answer(
                    question=question, matches=matches
                )

            return answer.strip()

        except OpenAIError as e:
            logger.error(f"OpenAI API call failed: {e}")
            logger.warning("Falling back to deterministic stub client for answer")
            return await DeterministicStubClient().generate_answer(question=question, matches=matches)

    async def classify_document(self, *, text: str, file_name: str) -> Classification:
        """Classify document text using OpenAI JSON mode."""
        excerpt = text[:6000]
        prompt = (
            f"File name: {file_name}\n\nDocument text:\n{excerpt}\n\n"
            "Return a JSON object with keys: category (short canonical document type, "
            'e.g. "Passport", "Visa", "Driver\'s License"), expiry_date (YYYY-MM-DD or null), '
            "issue_date (YYYY-MM-DD or null), confidence_score (0..1), reasoning (one sentence)."
        )

        try:
            data = await self._complete_json(
                "You classify personal and compliance documents. Respond with JSON only.",
                prompt,
            )
            return Classification.model_validate(data)
        except (OpenAIError, ValueError, PydanticValidationError) as e:
            raise ClassificationError(f"Document classification failed: {e}") from e

    async def suggest_rules(self, *, categories: list[str]) -> list[RuleSuggestion]:
        """Suggest related document rules using OpenAI JSON mode."""
        prompt = (
            "The user has already provided documents in these categories:\n"
            f"{json.dumps(categories)}\n\n"
            "Suggest a short, strictly deduplicated list of the most essential related documents "
            "they might still need for compliance in the United States.\n"
            "- Use one canonical official name per document type; never list synonyms.\n"
            "- Do not suggest anything the user already has, under any name.\n"
            f"- At most {MAX_MODEL_SUGGESTIONS} suggestions; fewer is fine.\n"
            'Return {"suggestions": [{"rule_name": string, "reason": string}]}.'
        )

        try:
            data = await self._complete_json(
                "You are a compliance assistant. Respond with JSON only.", prompt
            )
            raw = data.get("suggestions", [])
            if not isinstance(raw, list):
                raise ValueError("'suggestions' is not a list")
            return [RuleSuggestion.model_validate(item) for item in raw][:MAX_MODEL_SUGGESTIONS]
        except (OpenAIError, ValueError, PydanticValidationError) as e:
            raise LLMError(f"Rule suggestion failed: {e}") from e

    async def _complete_json(self, system_prompt: str, prompt: str) -> dict[str, Any]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": prompt},
            ],
            temperature=0.0,
            response_format={"type": "json_object"},
        )
        content = response.choices[0].message.content or ""
        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("model did not return a JSON object")
        return data

    def _answer_system_prompt(self) -> str:
        return """You answer questions about the user's own documents.

CRITICAL CONSTRAINTS:
- Use only the passages in the "Document Passages" section below.
- Do NOT invent names, numbers, or dates that are not present in the passages.
- If the passages do not contain the answer, say so plainly.
- Quote dates exactly as they appear."""

    def _build_context(self, matches: list[ChunkMatch]) -> str:
        lines = ["## Document Passages"]
        for match in matches:
            lines.append(f"- [{match.similarity:.2f}] {match.text}")
        return "\n".join(lines)


def get_llm_client(settings: Settings) -> LLMClient:
    """Factory function to get appropriate LLM client based on config.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    api_key = settings.openai_api_key

    if api_key and api_key.get_secret_value():
        logger.info("Using OpenAI client")
        return OpenAIClient(api_key=api_key.get_secret_value(), model=settings.openai_model)
    else:
        logger.warning("No OpenAI API key configured, using deterministic stub client")
        return DeterministicStubClient()
