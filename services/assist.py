"""Formatting and auto-tagging assistant backed by Gemini, with a local fallback.

The assistant never fails a create/edit operation: any remote error, empty
answer or malformed JSON degrades to :func:`simple_format` and
:func:`extract_tags_from_content`, and the result says so through
``assisted=False`` / ``provider="local"``.
"""
from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import google.generativeai as genai
from flask import current_app, has_app_context

from extensions import cache
from shared.exceptions import CollaboratorError

from .text_format import extract_tags_from_content, simple_format

__all__ = [
    "AssistResult",
    "Assistant",
    "GeminiClient",
    "MAX_REMOTE_TAGS",
    "assist_content",
    "get_assistant",
]

log = logging.getLogger(__name__)

MAX_REMOTE_TAGS = 8
PROVIDER_GEMINI = "gemini"
PROVIDER_LOCAL = "local"

FORMAT_PROMPT = """Vous êtes un expert en design d'information. Formatez le texte brut suivant en Markdown \
pour une clarté, une structure et une lisibilité optimales (titres, listes, tableaux si pertinent).

Règles impératives :
1) Restituer l'intégralité du contenu original : ne pas résumer, couper ni supprimer d'information.
2) Ne jamais ajouter de phrase d'introduction.
3) Retourner uniquement le texte formaté, sans commentaire.

Texte source :
---
{content}
---"""

FORMAT_AND_TAG_PROMPT = """Tu structures du contenu en Markdown de manière claire et complète.

Contraintes :
1) Conserver toutes les informations utiles.
2) Utiliser titres, listes, tableaux si pertinent.
3) Retourner un JSON strict : {{"content": string, "tags": string[]}}.
4) 2 à 8 tags maximum, courts, en français.

Texte source :
---
{content}
---"""


@dataclass(frozen=True)
class AssistResult:
    content: str
    tags: List[str] = field(default_factory=list)
    assisted: bool = False
    provider: str = PROVIDER_LOCAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "tags": list(self.tags),
            "assisted": self.assisted,
            "provider": self.provider,
        }


class GeminiClient:
    """Thin wrapper over `google.generativeai` raising CollaboratorError on failure."""

    def __init__(self, api_key: str, model_name: str, *, max_output_tokens: int = 8192) -> None:
        self.api_key = api_key
        self.model_name = model_name
        self.max_output_tokens = max_output_tokens

    def generate(self, prompt: str, *, json_response: bool = False) -> str:
        generation_config: Dict[str, Any] = {"max_output_tokens": self.max_output_tokens}
        if json_response:
            generation_config["response_mime_type"] = "application/json"
        try:
            genai.configure(api_key=self.api_key)
            model = genai.GenerativeModel(self.model_name)
            response = model.generate_content(prompt, generation_config=generation_config)
        except Exception as exc:
            raise CollaboratorError(f"Gemini request failed: {exc}") from exc

        try:
            if not response.parts:
                raise CollaboratorError(f"Gemini returned no content (feedback: {response.prompt_feedback}).")
            text = (response.text or "").strip()
        except (AttributeError, ValueError) as exc:
            raise CollaboratorError(f"Gemini response could not be read: {exc}") from exc
        if not text:
            raise CollaboratorError("Gemini returned an empty response.")
        return text


def _dedupe_remote_tags(values: Any) -> Optional[List[str]]:
    if not isinstance(values, list):
        return None
    seen: list[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        label = value.strip()
        if label and label not in seen:
            seen.append(label)
    return seen[:MAX_REMOTE_TAGS]


class Assistant:
    def __init__(self, client: GeminiClient | None = None) -> None:
        self.client = client

    @property
    def enabled(self) -> bool:
        return self.client is not None

    @staticmethod
    def local_result(raw_content: str, *, tagging: bool = True) -> AssistResult:
        content = simple_format(raw_content)
        tags = extract_tags_from_content(content) if tagging else []
        return AssistResult(content=content, tags=tags, assisted=False, provider=PROVIDER_LOCAL)

    def format_content(self, raw_content: str) -> AssistResult:
        if self.client is None:
            return self.local_result(raw_content, tagging=False)
        try:
            text = self.client.generate(FORMAT_PROMPT.format(content=raw_content))
        except CollaboratorError as exc:
            log.warning("Gemini formatting failed, falling back to local formatter: %s", exc)
            return self.local_result(raw_content, tagging=False)
        return AssistResult(content=simple_format(text), tags=[], assisted=True, provider=PROVIDER_GEMINI)

    def format_and_tag(self, raw_content: str) -> AssistResult:
        fallback = self.local_result(raw_content)
        if self.client is None:
            return fallback
        try:
            text = self.client.generate(FORMAT_AND_TAG_PROMPT.format(content=raw_content), json_response=True)
            parsed = json.loads(text)
            if not isinstance(parsed, dict):
                raise CollaboratorError("Gemini answer is not a JSON object.")
        except (CollaboratorError, ValueError) as exc:
            log.warning("Gemini assist failed, falling back to local formatter: %s", exc)
            return fallback

        remote_content = parsed.get("content")
        content = simple_format(remote_content) if isinstance(remote_content, str) and remote_content.strip() else fallback.content
        tags = _dedupe_remote_tags(parsed.get("tags")) or fallback.tags
        return AssistResult(content=content, tags=tags, assisted=True, provider=PROVIDER_GEMINI)


def get_assistant() -> Assistant:
    """Return the app-scoped assistant, building it from config on first use."""
    app = current_app._get_current_object()
    assistant = app.extensions.get("memocards.assistant")
    if assistant is None:
        api_key = app.config.get("GEMINI_API_KEY")
        client = None
        if api_key:
            client = GeminiClient(
                api_key,
                app.config.get("GEMINI_MODEL", "gemini-2.5-flash"),
                max_output_tokens=int(app.config.get("GEMINI_MAX_OUTPUT_TOKENS", 8192)),
            )
        assistant = Assistant(client)
        app.extensions["memocards.assistant"] = assistant
    return assistant


def _cache_key(raw_content: str, tagging: bool) -> str:
    digest = hashlib.sha256(raw_content.encode("utf-8")).hexdigest()
    return f"assist:{'tag' if tagging else 'fmt'}:{digest}"


def assist_content(raw_content: str, *, tagging: bool = True, assistant: Assistant | None = None) -> AssistResult:
    """Format (and optionally tag) content, memoizing successful remote answers."""
    assistant = assistant or get_assistant()
    use_cache = assistant.enabled and has_app_context()
    key = _cache_key(raw_content, tagging)
    if use_cache:
        cached = cache.get(key)
        if cached is not None:
            return AssistResult(**cached)

    result = assistant.format_and_tag(raw_content) if tagging else assistant.format_content(raw_content)
    if use_cache and result.assisted:
        cache.set(key, result.to_dict(), timeout=current_app.config.get("ASSIST_CACHE_TIMEOUT", 3600))
    return result
