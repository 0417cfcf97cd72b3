"""
AI Agents for Finance Tables

Both agents talk to Google Gemini through google-generativeai.

CRITICAL BOUNDARIES:

1. TABLE DRAFT AGENT:
   - CAN: Propose a table (name, description, typed columns, example rows)
   - CANNOT: Persist anything. A draft only becomes a table when the
     user accepts it.
   - MUST: Pass every draft through DraftValidator. A draft with
     structural errors is rejected whole; there is no partial table.

2. ADVISOR AGENT:
   - CAN: Answer questions about the user's own tables
   - MUST: Only see table data that is sent as context
   - NEVER: Modify tables

The LLM is a DRAFTER and an ADVISOR, never a writer. All mutations go
through the table engine.
"""

import json
from typing import Any, Optional, Sequence

import google.generativeai as genai
import structlog

from src.config import get_settings
from src.models.table import Table, TableDraft
from src.models.validation import ValidationIssue, ValidationResult
from src.validation.validator import DraftValidator

logger = structlog.get_logger(__name__)

ADVICE_FALLBACK = "Sorry, I couldn't process your request."

DRAFT_PROMPT = """The user wants to create a Brazilian personal finance table. Context: "{prompt}"

Generate a table structure: name, description, columns and example rows.

TYPE RULES:
- Columns holding money (prices, salaries, costs, totals) MUST have type 'currency'.
- Plain quantities use 'number'.
- Free text such as 'Category' or 'Status' uses 'text'.
- Dates use 'date' (YYYY-MM-DD).
- Tick boxes use 'checkbox'.

ROW RULES:
For each row in 'rows', provide a 'rowValues' array.
Each item in 'rowValues' has 'columnKey' and 'cellValue' (the raw content, without the R$ symbol).
Example: for R$ 1.500,00 the cellValue must be "1500.00".

Respond with ONLY a JSON object in this exact format:
{{"name": "...", "description": "...",
  "columns": [{{"key": "...", "label": "...", "type": "..."}}],
  "rows": [{{"rowValues": [{{"columnKey": "...", "cellValue": "..."}}]}}]}}"""

ADVICE_PROMPT = """You are an expert Brazilian financial advisor. These are the user's tables:
{context}

User question: {prompt}

Answer briefly, helpfully and in a friendly tone, in the user's language. Always use R$ when quoting amounts.
Use ONLY the data above. If it does not answer the question, say so."""


class AssistantError(Exception):
    """Base exception for assistant failures."""
    pass


class MalformedDraftError(AssistantError):
    """The assistant returned a table draft that cannot be used."""

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = issues or []


class AssistantBusyError(AssistantError):
    """A request or save is already in flight for this chat session."""
    pass


def _configure_model(generation_config: dict) -> Any:
    """Configure Google Generative AI and build a model."""
    settings = get_settings().gemini
    genai.configure(api_key=settings.api_key)
    config = {
        "temperature": settings.temperature,
        "max_output_tokens": settings.max_tokens,
    }
    config.update(generation_config)
    return genai.GenerativeModel(
        model_name=settings.model_name,
        generation_config=config,
    )


def extract_json(text: str) -> Any:
    """
    Parse the JSON object in a model response.

    Tolerates prose or code fences around the object.

    Raises:
        ValueError: If no JSON object can be read
    """
    start = text.find("{")
    end = text.rfind("}") + 1
    if start < 0 or end <= start:
        raise ValueError("No JSON object in response")
    return json.loads(text[start:end])


class TableDraftAgent:
    """
    Synthesizes table drafts from natural-language prompts.

    The model is asked for JSON output; the result is validated and
    normalized by DraftValidator before it is returned.
    """

    def __init__(
        self,
        model: Any = None,
        validator: Optional[DraftValidator] = None,
    ):
        """
        Args:
            model: Object with an async generate_content_async(prompt).
                   Defaults to a Gemini model configured from settings.
            validator: Draft validator; defaults to one using the app's
                       default theme color.
        """
        if model is None:
            model = _configure_model({"response_mime_type": "application/json"})
        self._model = model
        if validator is None:
            validator = DraftValidator(
                default_theme_color=get_settings().app.default_theme_color
            )
        self._validator = validator

    async def draft_table(self, prompt: str) -> tuple[TableDraft, ValidationResult]:
        """
        Ask the model for a table matching the prompt.

        Returns:
            (normalized draft, validation result with any warnings)

        Raises:
            MalformedDraftError: If the output is empty, not JSON, or fails
                                 schema validation
            AssistantError: If the model call itself fails
        """
        try:
            response = await self._model.generate_content_async(
                DRAFT_PROMPT.format(prompt=prompt)
            )
            text = (response.text or "").strip()
        except Exception as e:
            logger.error("draft_generation_failed", error=str(e))
            raise AssistantError(f"Table generation failed: {e}") from e

        if not text:
            raise MalformedDraftError("Empty response from the assistant")

        try:
            data = extract_json(text)
        except ValueError as e:
            raise MalformedDraftError(f"Assistant response is not valid JSON: {e}") from e

        result = self._validator.validate(data)
        if not result.is_valid:
            errors = [i for i in result.issues if i.severity == "error"]
            logger.warning(
                "draft_rejected",
                errors=[i.message for i in errors],
            )
            raise MalformedDraftError(
                "; ".join(i.message for i in errors) or "Draft failed validation",
                issues=result.issues,
            )

        logger.info(
            "draft_generated",
            name=result.draft.name,
            columns=len(result.draft.columns),
            rows=len(result.draft.rows),
            warnings=len(result.warnings),
        )
        return result.draft, result

    def describe_result(self, result: ValidationResult) -> str:
        """Chat-ready summary of what validation found or adjusted."""
        return self._validator.get_user_friendly_summary(result)


class AdvisorAgent:
    """
    Answers free-form questions using the user's tables as context.

    Context is one line per table, "<name>: <rows as JSON>", cut to
    max_context_chars.
    """

    def __init__(
        self,
        model: Any = None,
        max_context_chars: Optional[int] = None,
    ):
        if model is None:
            model = _configure_model({})
        self._model = model
        if max_context_chars is None:
            max_context_chars = get_settings().app.max_context_chars
        self._max_context_chars = max_context_chars

    def build_context(self, tables: Sequence[Table]) -> str:
        lines = [
            f"{table.name}: {json.dumps([row.cells for row in table.rows], ensure_ascii=False)}"
            for table in tables
        ]
        context = "\n".join(lines)
        if len(context) > self._max_context_chars:
            logger.warning(
                "advice_context_truncated",
                length=len(context),
                limit=self._max_context_chars,
            )
            context = context[:self._max_context_chars]
        return context

    async def advise(self, tables: Sequence[Table], prompt: str) -> str:
        """
        Natural-language answer to the prompt.

        Raises:
            AssistantError: If the model call fails
        """
        full_prompt = ADVICE_PROMPT.format(
            context=self.build_context(tables) or "(no tables yet)",
            prompt=prompt,
        )
        try:
            response = await self._model.generate_content_async(full_prompt)
            text = (response.text or "").strip()
        except Exception as e:
            logger.error("advice_generation_failed", error=str(e))
            raise AssistantError(f"Advice generation failed: {e}") from e

        return text or ADVICE_FALLBACK
