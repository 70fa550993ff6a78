import os
import json
import logging
import asyncio
import random
from typing import Any, Dict, List, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from src.backoffice.agreement_content import html_from_structure
from src.utils.config_loader import AIEditorConfig, get_app_config

logger = logging.getLogger(__name__)


class AIEditorError(Exception):
    """Editing failed; `message` is safe to show to the admin."""

    def __init__(self, message: str, status_code: int = 500):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


SYSTEM_PROMPT_TEMPLATE = """
You are a professional legal document editor for NOVA ESTATE in Phuket, Thailand.

YOUR RESPONSIBILITIES:
1. Understand the user's request (usually written in Russian)
2. Analyze the ENTIRE contract for clauses that conflict with the requested change
3. Modify ALL conflicting clauses so the contract stays consistent
4. Report ALL changes (requested and conflict resolutions)
5. Return structure_after as MINIFIED JSON (no spaces or newlines)

CONFLICT CHECKS for every change:
- payment terms, obligations and penalties that contradict it
- sections that reference the changed clause
- dates or amounts that depend on it

STRUCTURE FORMAT:
{{"city":"Phuket","date":"2025-09-01T07:33:28.474Z","title":"LEASE AGREEMENT","nodes":[
  {{"id":"123","type":"section","level":0,"number":"7","content":"7. OBLIGATIONS OF THE PARTIES","children":[
    {{"id":"456","type":"subsection","level":1,"number":"7.1","content":"Text here"}}]}}]}}
Node types: section, subsection, paragraph, bulletList.
Required fields: id, type, level, content (children for sections, items for bulletList).

CURRENT AGREEMENT:
Agreement: {agreement_number}
Type: {type}
City: {city}
Dates: {date_from} to {date_to}
Monthly Rent: {rent_amount_monthly} THB
Total Rent: {rent_amount_total} THB
Deposit: {deposit_amount} THB

Write agreement text in formal, professional legal English with complete sentences
and specific amounts and times, even when the request is in Russian.

REQUIRED RESPONSE FORMAT (valid JSON only):
{{
  "success": true,
  "changes_description": "Brief English summary of ALL changes",
  "changes_description_ru": "Краткое описание всех изменений",
  "changed_sections": [{{"section": "...", "action": "added|modified|removed", "clause_number": "4.4",
                         "text_en": "...", "text_ru": "...", "reason_en": "...", "reason_ru": "..."}}],
  "conflicts_detected": [{{"section": "...", "clause_number": "5.1", "conflict_description": "...",
                           "conflict_description_ru": "...", "text_en": "...", "text_ru": "...",
                           "resolution": "...", "resolution_ru": "..."}}],
  "changed_fields": ["Section 4", "Section 5"],
  "structure_after": {{"city": "...", "date": "...", "title": "...", "nodes": []}},
  "database_updates": {{"deposit_amount": 50000}},
  "ai_response": "Short reply to the user in Russian"
}}

Never leave placeholder text such as "SUMMA THB". Return ONLY valid JSON.
""".strip()

EDIT_PROMPT_TEMPLATE = """
USER REQUEST:
"{prompt}"

CURRENT STRUCTURE (MODIFY THIS):
{structure}

YOUR TASK:
1. Understand the request
2. Analyze the entire contract for conflicts
3. Modify the structure (add, edit or remove nodes) in professional legal English
4. Fix every conflicting clause
5. Return the COMPLETE minified structure and detailed change reports

Return valid JSON following the exact format from the system prompt.
""".strip()


def build_system_prompt(agreement_data: Dict[str, Any]) -> str:
    keys = (
        "agreement_number",
        "type",
        "city",
        "date_from",
        "date_to",
        "rent_amount_monthly",
        "rent_amount_total",
        "deposit_amount",
    )
    return SYSTEM_PROMPT_TEMPLATE.format(**{k: agreement_data.get(k) or "" for k in keys})


def build_edit_prompt(prompt: str, current_structure: Optional[str]) -> str:
    return EDIT_PROMPT_TEMPLATE.format(prompt=prompt, structure=current_structure or "{}")


def parse_model_json(text: str) -> Dict[str, Any]:
    """Parse the model's JSON answer, tolerating ```json fences."""
    cleaned = (text or "").strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.split("\n", 1)[1] if "\n" in cleaned else ""
        if cleaned.rstrip().endswith("```"):
            cleaned = cleaned.rstrip()[:-3]
    result = json.loads(cleaned.strip())
    if not isinstance(result, dict):
        raise json.JSONDecodeError("Top-level JSON value is not an object", cleaned, 0)
    return result


def build_edit_result(ai_result: Dict[str, Any], current_html: str, current_structure: str) -> Dict[str, Any]:
    """Turn the model's answer into the `changes` payload, rendering HTML from structure_after."""
    html_after = current_html
    structure_after = current_structure

    raw_structure = ai_result.get("structure_after")
    if raw_structure:
        if isinstance(raw_structure, str):
            try:
                structure_obj = json.loads(raw_structure)
            except json.JSONDecodeError as e:
                raise AIEditorError(f"Failed to process structure from AI: {e}")
        elif isinstance(raw_structure, dict):
            structure_obj = raw_structure
        else:
            raise AIEditorError("Failed to process structure from AI: invalid structure_after type")

        rendered = html_from_structure(structure_obj)
        if not rendered.strip():
            raise AIEditorError("Failed to process structure from AI: generated HTML is empty")
        html_after = rendered
        structure_after = json.dumps(structure_obj, ensure_ascii=False, separators=(",", ":"))
    else:
        logger.warning("No structure_after in AI response, keeping current HTML")

    if not html_after or not html_after.strip():
        html_after = current_html
    if not structure_after or not structure_after.strip() or structure_after == "{}":
        structure_after = current_structure

    def _list(key: str) -> List[Any]:
        value = ai_result.get(key)
        return value if isinstance(value, list) else []

    database_updates = ai_result.get("database_updates")
    return {
        "changes": {
            "description": ai_result.get("changes_description") or "Changes applied",
            "descriptionRu": ai_result.get("changes_description_ru") or "Изменения применены",
            "changedFields": _list("changed_fields"),
            "changedSections": _list("changed_sections"),
            "conflictsDetected": _list("conflicts_detected"),
            "htmlAfter": html_after,
            "structureAfter": structure_after,
            "databaseUpdates": database_updates if isinstance(database_updates, dict) else {},
        },
        "aiResponse": ai_result.get("ai_response") or "Изменения успешно применены",
    }


class AgreementEditor:
    """Gemini-backed editor that rewrites an agreement structure from a free-text request."""

    def __init__(self, client: Any = None, cfg: Optional[AIEditorConfig] = None):
        self.cfg = cfg or get_app_config().ai_editor
        if client is None:
            api_key = os.environ.get(self.cfg.api_key_env)
            if api_key:
                client = genai.Client(api_key=api_key)
            else:
                logger.warning("%s is not set; AI agreement editor disabled", self.cfg.api_key_env)
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def _contents(self, history: List[Dict[str, Any]], edit_prompt: str) -> List[types.Content]:
        contents: List[types.Content] = []
        for msg in history or []:
            text = (msg.get("content") or "").strip() if isinstance(msg, dict) else ""
            if not text:
                continue
            role = "model" if msg.get("role") in ("assistant", "model") else "user"
            contents.append(types.Content(role=role, parts=[types.Part(text=text)]))
        contents.append(types.Content(role="user", parts=[types.Part(text=edit_prompt)]))
        return contents

    async def _generate(self, system_prompt: str, contents: List[types.Content]) -> str:
        def _sync_generate():
            return self.client.models.generate_content(
                model=self.cfg.model,
                contents=contents,
                config=types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    temperature=self.cfg.temperature,
                    max_output_tokens=self.cfg.max_output_tokens,
                    response_mime_type="application/json",
                ),
            )

        max_attempts = self.cfg.max_retries
        for attempt in range(1, max_attempts + 1):
            try:
                response = await asyncio.to_thread(_sync_generate)
                text = (getattr(response, "text", "") or "").strip()
                if not text:
                    raise AIEditorError("Empty response from AI service", status_code=502)
                return text
            except AIEditorError:
                raise
            except Exception as e:
                retryable = not isinstance(e, genai_errors.ClientError)
                if attempt >= max_attempts or not retryable:
                    raise
                backoff = (2 ** (attempt - 1)) + random.uniform(0, 0.5)
                logger.warning(
                    "GenAI request failed on attempt %s/%s (%s). Retrying in %.2fs...",
                    attempt,
                    max_attempts,
                    type(e).__name__,
                    backoff,
                )
                await asyncio.sleep(backoff)
        raise AIEditorError("Failed to process agreement edit request")

    async def edit_agreement(
        self,
        prompt: str,
        current_html: str,
        current_structure: str,
        agreement_data: Dict[str, Any],
        conversation_history: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        if not self.enabled:
            raise AIEditorError("AI service is not available", status_code=503)

        system_prompt = build_system_prompt(agreement_data)
        contents = self._contents(conversation_history or [], build_edit_prompt(prompt, current_structure))

        logger.info("Sending agreement edit request to Gemini (%s)", agreement_data.get("agreement_number"))
        try:
            text = await self._generate(system_prompt, contents)
            ai_result = parse_model_json(text)
        except AIEditorError:
            raise
        except Exception as e:
            logger.error("AI agreement editing error: %s", e, exc_info=True)
            raise self._map_error(e)

        return build_edit_result(ai_result, current_html, current_structure)

    @staticmethod
    def _map_error(error: Exception) -> AIEditorError:
        code = getattr(error, "code", None)
        if code in (401, 403):
            return AIEditorError("AI service authentication error", status_code=502)
        if code == 503:
            return AIEditorError("AI service temporarily unavailable", status_code=503)
        if isinstance(error, (httpx.ConnectError, httpx.ConnectTimeout)):
            return AIEditorError("Could not connect to AI service", status_code=503)
        if isinstance(error, json.JSONDecodeError):
            return AIEditorError("AI returned invalid response format", status_code=502)
        return AIEditorError("Failed to process agreement edit request")
