"""
Gemini Gateway — single entry point for generative-AI calls

  ┌────────────────────────────────────────────────┐
  │  GeminiGateway.analyze(prompt)                 │
  │  GeminiGateway.chat(prompt, history)           │
  │       │                                        │
  │       ▼                                        │
  │  build_messages()   ← thread prior turns       │
  │       │                                        │
  │       ▼                                        │
  │  ChatGoogleGenerativeAI.ainvoke()              │
  │       │   (fixed sampling profile per call)    │
  │       ▼                                        │
  │  _check_response()  ← safety / empty text      │
  │       │                                        │
  │       ▼                                        │
  │  str                                           │
  └────────────────────────────────────────────────┘

Two sampling profiles, fixed per call type:

  analysis   temperature 0.3  top_p 0.8  top_k 40  max 8192 tokens
  chat       temperature 0.5  top_p 0.9  top_k 40  max 4096 tokens

No retry/backoff beyond the client's own. Every provider exception is
classified into a GenAIFailure so callers get a distinct, user-facing error
for safety blocks, quota exhaustion and bad credentials.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Protocol

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage

from legallens.core.config import Settings
from legallens.core.errors import GenAIFailure, GenerativeAIError

logger = logging.getLogger(__name__)


class _Turn(Protocol):
    question: str
    answer: str


# ---------------------------------------------------------------------------
# Sampling profiles
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SamplingProfile:
    name:              str
    temperature:       float
    top_p:             float
    top_k:             int
    max_output_tokens: int


def profiles_from_settings(settings: Settings) -> tuple[SamplingProfile, SamplingProfile]:
    analysis = SamplingProfile(
        name="analysis",
        temperature=settings.analysis_temperature,
        top_p=settings.analysis_top_p,
        top_k=settings.analysis_top_k,
        max_output_tokens=settings.analysis_max_output_tokens,
    )
    chat = SamplingProfile(
        name="chat",
        temperature=settings.chat_temperature,
        top_p=settings.chat_top_p,
        top_k=settings.chat_top_k,
        max_output_tokens=settings.chat_max_output_tokens,
    )
    return analysis, chat


# ---------------------------------------------------------------------------
# Failure classification
# ---------------------------------------------------------------------------

# Matched against the exception class name (suffix): google.api_core,
# google.genai and langchain wrappers all use these names.
_QUOTA_EXCEPTION_TYPES = ("ResourceExhausted", "TooManyRequests", "RateLimitError")
_CREDENTIAL_EXCEPTION_TYPES = ("PermissionDenied", "Unauthenticated", "Unauthorized")

# Matched against the exception message (upper-cased)
_QUOTA_MARKERS = ("QUOTA", "RESOURCE_EXHAUSTED", "RATE LIMIT")
_CREDENTIAL_MARKERS = ("API_KEY_INVALID", "INVALID_API_KEY", "API KEY NOT VALID", "PERMISSION_DENIED")
_SAFETY_MARKERS = ("SAFETY", "BLOCKED", "PROHIBITED_CONTENT")


def _http_status(exc: BaseException) -> int | None:
    # google.api_core errors carry .code, httpx-style errors .status_code
    for attr in ("code", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    return None


def classify_failure(exc: BaseException) -> GenAIFailure:
    """Map a provider exception onto a GenAIFailure."""
    name = type(exc).__name__
    message = str(exc).upper()

    if _http_status(exc) == 429:
        return GenAIFailure.QUOTA
    if any(name.endswith(t) for t in _QUOTA_EXCEPTION_TYPES) or any(m in message for m in _QUOTA_MARKERS):
        return GenAIFailure.QUOTA
    if any(name.endswith(t) for t in _CREDENTIAL_EXCEPTION_TYPES) or any(m in message for m in _CREDENTIAL_MARKERS):
        return GenAIFailure.CREDENTIALS
    if any(m in message for m in _SAFETY_MARKERS):
        return GenAIFailure.SAFETY
    return GenAIFailure.UPSTREAM


def _content_text(content: Any) -> str:
    """AIMessage.content is either a string or a list of content parts."""
    if isinstance(content, str):
        return content
    parts = []
    for part in content or ():
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

@dataclass
class GatewayResponse:
    """The result of a single Gemini call."""
    content:       str
    model_used:    str
    profile:       str
    finish_reason: str | None
    latency_ms:    float


class GeminiGateway:
    """
    Built once by the ServiceContainer. The chat models are created lazily
    per profile and then reused; construction has no side effects, so a
    redundant build under concurrency is harmless.
    """

    def __init__(
        self,
        model: str,
        api_key: str,
        analysis_profile: SamplingProfile,
        chat_profile: SamplingProfile,
        llm_factory: Callable[[SamplingProfile], BaseChatModel] | None = None,
    ) -> None:
        self.model = model
        self._api_key = api_key
        self._analysis_profile = analysis_profile
        self._chat_profile = chat_profile
        self._llm_factory = llm_factory or self._build_llm
        self._llms: dict[str, BaseChatModel] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiGateway":
        analysis, chat = profiles_from_settings(settings)
        return cls(settings.gemini_model, settings.gemini_api_key, analysis, chat)

    def _build_llm(self, profile: SamplingProfile) -> BaseChatModel:
        from langchain_google_genai import ChatGoogleGenerativeAI

        return ChatGoogleGenerativeAI(
            model=self.model,
            google_api_key=self._api_key,
            temperature=profile.temperature,
            top_p=profile.top_p,
            top_k=profile.top_k,
            max_output_tokens=profile.max_output_tokens,
        )

    def _llm(self, profile: SamplingProfile) -> BaseChatModel:
        llm = self._llms.get(profile.name)
        if llm is None:
            llm = self._llm_factory(profile)
            self._llms[profile.name] = llm
        return llm

    # -----------------------------------------------------------------------
    # Public calls
    # -----------------------------------------------------------------------

    async def analyze(self, prompt: str) -> str:
        """Single-shot: summary or targeted question."""
        response = await self._invoke(self._analysis_profile, self.build_messages(prompt))
        return response.content

    async def chat(self, prompt: str, history: Iterable[_Turn] = ()) -> str:
        """Prior turns are threaded as alternating user/model messages."""
        response = await self._invoke(self._chat_profile, self.build_messages(prompt, history))
        return response.content

    # -----------------------------------------------------------------------
    # Internals
    # -----------------------------------------------------------------------

    async def _invoke(self, profile: SamplingProfile, messages: list[BaseMessage]) -> GatewayResponse:
        llm = self._llm(profile)
        t0 = time.perf_counter()
        try:
            message = await llm.ainvoke(messages)
        except Exception as exc:
            reason = classify_failure(exc)
            logger.error(
                "Gemini | call failed profile=%s reason=%s error=%s",
                profile.name, reason.value, exc,
            )
            raise GenerativeAIError(reason, str(exc)) from exc
        latency = (time.perf_counter() - t0) * 1000

        response = self._check_response(message, profile)
        response.latency_ms = latency
        logger.info(
            "Gemini | model=%s profile=%s messages=%d chars_out=%d finish=%s latency_ms=%.1f",
            self.model, profile.name, len(messages), len(response.content),
            response.finish_reason, latency,
        )
        return response

    def _check_response(self, message: BaseMessage, profile: SamplingProfile) -> GatewayResponse:
        metadata = getattr(message, "response_metadata", None) or {}
        finish_reason = metadata.get("finish_reason")
        finish = str(finish_reason or "").upper()

        if "SAFETY" in finish or "BLOCKLIST" in finish or "PROHIBITED" in finish:
            logger.warning("Gemini | response blocked profile=%s finish=%s", profile.name, finish)
            raise GenerativeAIError(GenAIFailure.SAFETY, f"finish_reason={finish_reason}")

        text = _content_text(message.content)
        if not text.strip():
            raise GenerativeAIError(GenAIFailure.EMPTY_RESPONSE, f"finish_reason={finish_reason}")

        return GatewayResponse(
            content=text,
            model_used=self.model,
            profile=profile.name,
            finish_reason=str(finish_reason) if finish_reason is not None else None,
            latency_ms=0.0,
        )

    @staticmethod
    def build_messages(prompt: str, history: Iterable[_Turn] = ()) -> list[BaseMessage]:
        messages: list[BaseMessage] = []
        for turn in history:
            messages.append(HumanMessage(content=turn.question))
            messages.append(AIMessage(content=turn.answer))
        messages.append(HumanMessage(content=prompt))
        return messages
