"""
Language model features: the admin assistant (French prompts per request
type) and the public site chatbot, both streaming the answer token by token.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..core.config import settings
from ..core.templates import render
from ..schemas.ai import AssistantRequest, ChatRequest
from . import catalog
from .sse import DONE_EVENT, SSEParser, encode_event

logger = logging.getLogger(__name__)

FIELD_CONTEXTS = {
    "notes_appel": "Notes prises pendant un appel téléphonique avec un client. Structure avec les points clés discutés.",
    "resume_appel": "Résumé d'un appel téléphonique. Reformule de façon concise et professionnelle.",
    "actions_suivre": "Liste d'actions à effectuer. Structure en liste numérotée avec priorités si pertinent.",
    "notes_internes": "Notes internes confidentielles. Reformule de manière claire et organisée.",
    "public_cible": "Description du public cible/clientèle. Développe en profil marketing détaillé.",
    "objectifs_projet": "Objectifs du projet. Structure de manière SMART si possible (Spécifique, Mesurable, Atteignable, Réaliste, Temporel).",
    "concurrents": "Liste de concurrents ou sites de référence. Formate de manière structurée.",
    "sites_exemples": "Sites web que le client apprécie. Liste clairement avec les aspects appréciés.",
    "autres_fonctionnalites": "Fonctionnalités spécifiques demandées. Clarifie et structure.",
    "fonctionnalites_app": "Fonctionnalités principales de l'application mobile. Liste de manière structurée.",
    "taches_automatiser": "Tâches à automatiser. Détaille les processus à optimiser.",
    "inspirations": "Inspirations et références visuelles. Liste les éléments appréciés.",
    "elements_eviter": "Éléments à éviter dans le design. Liste clairement.",
    "default": "Texte professionnel. Reformule de manière claire et structurée.",
}

UPSTREAM_ERRORS = {
    429: "Limite de requêtes atteinte, réessayez plus tard.",
    402: "Crédits insuffisants.",
}


class AssistantError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _pick(data: Dict[str, Any], *keys: str, default=None):
    """First present key; the dashboard sends camelCase, scripts send snake_case."""
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def build_messages(request: AssistantRequest) -> List[Dict[str, str]]:
    data = request.data or {}
    system = "prompts/system_general.txt"

    if request.type == "estimate_price":
        system = "prompts/system_pricing.txt"
        user = render(
            "prompts/user_estimate_price.txt",
            services=_pick(data, "services", default=[]),
            budget=data.get("budget"),
            business_type=_pick(data, "businessType", "business_type"),
            project_details=_pick(data, "projectDetails", "project_details"),
            call_notes=_pick(data, "callNotes", "call_notes"),
        )
    elif request.type == "insights":
        user = render("prompts/user_insights.txt", data_json=json.dumps(data, indent=2, ensure_ascii=False, default=str))
    elif request.type == "custom_query":
        user = render(
            "prompts/user_custom_query.txt",
            data_json=json.dumps(data, indent=2, ensure_ascii=False, default=str),
            query=request.query or "",
        )
    elif request.type == "enhance_text":
        system = "prompts/system_enhance.txt"
        context = _pick(data, "fieldContext", "field_context", default="default")
        user = render(
            "prompts/user_enhance_text.txt",
            instruction=FIELD_CONTEXTS.get(context, FIELD_CONTEXTS["default"]),
            original_text=_pick(data, "originalText", "original_text", default=""),
        )
    elif request.type == "generate_client_summary":
        system = "prompts/system_client_summary.txt"
        user = render(
            "prompts/user_client_summary.txt",
            client=data.get("client") or {},
            quotes=data.get("quotes") or [],
            calls=data.get("calls") or [],
            call_notes=_pick(data, "callNotes", "call_notes", default={}) or {},
        )
    elif request.type == "draft_reply":
        system = "prompts/system_draft_reply.txt"
        user = render(
            "prompts/user_draft_reply.txt",
            client=data.get("client") or {},
            context=data.get("context"),
            intent=data.get("intent"),
        )
    else:
        user = request.query or "Analyse les données et donne-moi un résumé."

    return [
        {"role": "system", "content": render(system).strip()},
        {"role": "user", "content": user.strip()},
    ]


def build_chat_messages(request: ChatRequest) -> List[Dict[str, str]]:
    """Public chatbot: the agency prompt with live prices, then the latest turns of the conversation."""
    system = render(
        "prompts/system_chatbot.txt",
        categories=catalog.PRICING,
        admin_email=settings.ADMIN_EMAIL,
        site_url=settings.SITE_URL,
    )
    history = request.messages[-settings.CHATBOT_HISTORY:]
    return [{"role": "system", "content": system.strip()}] + [
        {"role": m.role, "content": m.content} for m in history
    ]


class CompletionStream:
    """
    Content tokens of an open completion.

    Owns the HTTP client and response: iterating to the end closes them, and
    aclose() releases them when the stream is abandoned or never read.
    """

    def __init__(self, client: httpx.AsyncClient, response: httpx.Response):
        self._client = client
        self._response = response
        self.closed = False

    def __aiter__(self) -> AsyncIterator[str]:
        return self._tokens()

    async def _tokens(self) -> AsyncIterator[str]:
        parser = SSEParser()
        try:
            async for chunk in self._response.aiter_text():
                for token in parser.feed(chunk):
                    yield token
                if parser.done:
                    break
            for token in parser.finish():
                yield token
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        await self._response.aclose()
        await self._client.aclose()


async def event_stream(tokens: CompletionStream) -> AsyncIterator[str]:
    """Re-emit tokens as our own SSE frames, always ending with [DONE]."""
    try:
        try:
            async for token in tokens:
                yield encode_event({"content": token})
        except Exception:
            logger.exception("AI stream interrupted")
            yield encode_event({"error": "Erreur du service IA"})
        yield DONE_EVENT
    finally:
        await tokens.aclose()


class AssistantClient:
    """Streams chat completions from an OpenAI-compatible endpoint."""

    def __init__(
        self,
        api_key: str,
        api_url: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 1500,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self._transport = transport

    async def open_stream(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> CompletionStream:
        """
        Start the completion and return its token stream.

        Upstream failures surface here as AssistantError, before any token is
        produced, so callers can still answer with a proper status code.
        """
        if not self.api_key:
            raise AssistantError(500, "Service IA non configuré")

        client = httpx.AsyncClient(transport=self._transport, timeout=httpx.Timeout(60.0, connect=10.0))
        request = client.build_request(
            "POST",
            self.api_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "model": self.model,
                "messages": messages,
                "temperature": self.temperature if temperature is None else temperature,
                "max_tokens": self.max_tokens if max_tokens is None else max_tokens,
                "stream": True,
            },
        )
        try:
            response = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            logger.error("AI request failed: %s", exc)
            raise AssistantError(502, "Erreur du service IA") from exc

        if response.status_code != 200:
            body = await response.aread()
            await response.aclose()
            await client.aclose()
            logger.error("AI gateway error %s: %s", response.status_code, body[:500])
            if response.status_code in UPSTREAM_ERRORS:
                raise AssistantError(response.status_code, UPSTREAM_ERRORS[response.status_code])
            raise AssistantError(502, "Erreur du service IA")

        return CompletionStream(client, response)


def get_assistant() -> AssistantClient:
    return AssistantClient(
        api_key=settings.AI_API_KEY,
        api_url=settings.AI_API_URL,
        model=settings.AI_MODEL,
        temperature=settings.AI_TEMPERATURE,
        max_tokens=settings.AI_MAX_TOKENS,
    )
