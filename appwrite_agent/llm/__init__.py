"""Model backend boundary and the Gemini provider (direct HTTP calls)."""

import base64
import copy
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Sequence

import httpx

from appwrite_agent.attachments import FileAttachment
from appwrite_agent.exceptions import ConfigurationError, LLMAPIError, LLMError
from appwrite_agent.instructions import InstructionLoader
from appwrite_agent.logging import get_logger

log = get_logger(__name__)


GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
THINKING_OPTIONAL_MODELS = {"gemini-2.5-flash"}


@dataclass
class ToolCall:
    """A tool call requested by the model."""

    name: str
    args: dict[str, Any] = field(default_factory=dict)
    id: str = ""


@dataclass
class TextDelta:
    """Incremental text from a streaming response."""

    text: str


@dataclass
class ToolCallRequest:
    """One or more tool calls the model wants executed before it continues."""

    calls: list[ToolCall]


@dataclass
class FinalText:
    """Complete text of a non-streamed response."""

    text: str


@dataclass
class GroundingChunks:
    """Citations attached to the response."""

    chunks: list[dict[str, Any]]


ModelEvent = TextDelta | ToolCallRequest | FinalText | GroundingChunks


@dataclass(frozen=True)
class SessionSettings:
    """Everything a backend needs to open a chat session."""

    model: str
    api_key: str | None = None
    tools: tuple[dict[str, Any], ...] = ()
    system_instruction: str = ""
    thinking_enabled: bool = True
    temperature: float | None = None


class ModelSession(ABC):
    """A stateful conversation with the model."""

    @property
    @abstractmethod
    def history(self) -> list[dict[str, Any]]:
        """Copy of the conversation turns recorded so far."""

    @abstractmethod
    def send(
        self,
        message: str,
        files: Sequence[FileAttachment] = (),
    ) -> AsyncIterator[ModelEvent]:
        """Send a user message and stream the model's events."""

    @abstractmethod
    def send_tool_results(self, results: Sequence[Any]) -> AsyncIterator[ModelEvent]:
        """Send tool results back as a continuation of the current turn."""

    @abstractmethod
    def discard_turn(self) -> None:
        """Drop everything the current turn added to the history.

        Called when a turn fails so the next turn starts from the history
        as it was before the failed one.
        """


class ModelBackend(ABC):
    """Factory for model sessions."""

    @abstractmethod
    def create_session(
        self,
        settings: SessionSettings,
        history: list[dict[str, Any]] | None = None,
    ) -> ModelSession:
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass


class GeminiSession(ModelSession):
    """Chat session against the Gemini ``generateContent`` REST API."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: SessionSettings,
        api_key: str,
        base_url: str = GEMINI_BASE_URL,
        history: list[dict[str, Any]] | None = None,
        streaming: bool = False,
        instructions: InstructionLoader | None = None,
    ):
        self.client = client
        self.settings = settings
        self.base_url = base_url.rstrip("/")
        self.streaming = streaming
        self.instructions = instructions or InstructionLoader()
        self._api_key = api_key
        self._contents: list[dict[str, Any]] = copy.deepcopy(history or [])
        self._turn_start: int | None = None

    @property
    def history(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._contents)

    def _build_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"contents": self._contents}
        if self.settings.system_instruction:
            body["systemInstruction"] = {"parts": [{"text": self.settings.system_instruction}]}
        if self.settings.tools:
            body["tools"] = [{"functionDeclarations": [dict(t) for t in self.settings.tools]}]
        generation: dict[str, Any] = {}
        if self.settings.temperature is not None:
            generation["temperature"] = self.settings.temperature
        if self.settings.model in THINKING_OPTIONAL_MODELS and not self.settings.thinking_enabled:
            generation["thinkingConfig"] = {"thinkingBudget": 0}
        if generation:
            body["generationConfig"] = generation
        return body

    @staticmethod
    def _file_part(file: FileAttachment) -> dict[str, Any]:
        return {
            "inlineData": {
                "mimeType": file.mime_type,
                "data": base64.b64encode(file.data).decode("ascii"),
            }
        }

    @staticmethod
    def _function_response_part(result: Any) -> dict[str, Any]:
        if isinstance(result, dict):
            name = str(result.get("name", ""))
            response = result.get("response")
        else:
            name = str(getattr(result, "name", ""))
            response = getattr(result, "response", None)
        if not isinstance(response, dict):
            response = {"result": response}
        return {"functionResponse": {"name": name, "response": response}}

    async def send(
        self,
        message: str,
        files: Sequence[FileAttachment] = (),
    ) -> AsyncIterator[ModelEvent]:
        parts: list[dict[str, Any]] = []
        if message:
            parts.append({"text": message})
        parts.extend(self._file_part(f) for f in files)
        self._turn_start = len(self._contents)
        self._contents.append({"role": "user", "parts": parts})
        async for event in self._generate():
            yield event

    async def send_tool_results(self, results: Sequence[Any]) -> AsyncIterator[ModelEvent]:
        parts: list[dict[str, Any]] = [{"text": self.instructions.load("tool_results_preamble.md")}]
        parts.extend(self._function_response_part(r) for r in results)
        self._contents.append({"role": "user", "parts": parts})
        async for event in self._generate():
            yield event

    def discard_turn(self) -> None:
        if self._turn_start is None:
            return
        dropped = len(self._contents) - self._turn_start
        del self._contents[self._turn_start:]
        self._turn_start = None
        log.debug("Discarded failed turn", dropped_turns=dropped)

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "x-goog-api-key": self._api_key}

    @staticmethod
    def _parse_candidate(data: dict[str, Any]) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        """Return (parts, grounding chunks) of the first candidate."""
        candidates = data.get("candidates") or []
        if not candidates:
            feedback = data.get("promptFeedback") or {}
            reason = feedback.get("blockReason")
            if reason:
                raise LLMError(f"Gemini blocked the prompt: {reason}")
            return [], []
        candidate = candidates[0] or {}
        parts = (candidate.get("content") or {}).get("parts") or []
        grounding = (candidate.get("groundingMetadata") or {}).get("groundingChunks") or []
        return list(parts), list(grounding)

    @staticmethod
    def _split_parts(parts: list[dict[str, Any]]) -> tuple[str, list[ToolCall]]:
        text_parts: list[str] = []
        calls: list[ToolCall] = []
        for part in parts:
            if part.get("thought"):
                continue
            if "text" in part and part["text"]:
                text_parts.append(str(part["text"]))
            call = part.get("functionCall")
            if call:
                calls.append(ToolCall(
                    name=str(call.get("name", "")),
                    args=dict(call.get("args") or {}),
                    id=str(call.get("id", "")),
                ))
        return "".join(text_parts), calls

    def _record_model_turn(self, parts: list[dict[str, Any]], has_calls: bool) -> None:
        kept = [p for p in parts if not p.get("thought")]
        if kept:
            self._contents.append({"role": "model", "parts": kept})
        if not has_calls:
            # A response without tool calls ends the turn; it can no longer be discarded.
            self._turn_start = None

    async def _generate(self) -> AsyncIterator[ModelEvent]:
        if self.streaming:
            async for event in self._generate_streaming():
                yield event
            return

        url = f"{self.base_url}/models/{self.settings.model}:generateContent"
        try:
            log.debug("Calling Gemini", model=self.settings.model, turns=len(self._contents))
            response = await self.client.post(url, json=self._build_body(), headers=self._headers())
            if not response.is_success:
                raise LLMAPIError(
                    f"Gemini API error {response.status_code}: {_error_message(response)}",
                    status_code=response.status_code,
                )
            data = response.json()
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Gemini HTTP error: {e}")
        except json.JSONDecodeError as e:
            raise LLMError(f"Gemini response decode error: {e}")

        parts, grounding = self._parse_candidate(data)
        text, calls = self._split_parts(parts)
        self._record_model_turn(parts, has_calls=bool(calls))
        if text:
            yield FinalText(text=text)
        if grounding:
            yield GroundingChunks(chunks=grounding)
        if calls:
            yield ToolCallRequest(calls=calls)

    async def _generate_streaming(self) -> AsyncIterator[ModelEvent]:
        url = f"{self.base_url}/models/{self.settings.model}:streamGenerateContent"
        collected_parts: list[dict[str, Any]] = []
        grounding: list[dict[str, Any]] = []
        calls: list[ToolCall] = []
        text_parts: list[str] = []
        try:
            async with self.client.stream(
                "POST",
                url,
                params={"alt": "sse"},
                json=self._build_body(),
                headers=self._headers(),
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise LLMAPIError(
                        f"Gemini API error {response.status_code}: {_error_message(response)}",
                        status_code=response.status_code,
                    )
                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    payload = line[len("data:"):].strip()
                    if not payload:
                        continue
                    chunk = json.loads(payload)
                    parts, chunk_grounding = self._parse_candidate(chunk)
                    grounding.extend(chunk_grounding)
                    text, chunk_calls = self._split_parts(parts)
                    collected_parts.extend(p for p in parts if "functionCall" in p)
                    calls.extend(chunk_calls)
                    if text:
                        text_parts.append(text)
                        yield TextDelta(text=text)
        except httpx.HTTPError as e:
            raise LLMAPIError(f"Gemini streaming error: {e}")
        except json.JSONDecodeError as e:
            raise LLMError(f"Gemini stream decode error: {e}")

        full_text = "".join(text_parts)
        model_parts = ([{"text": full_text}] if full_text else []) + collected_parts
        self._record_model_turn(model_parts, has_calls=bool(calls))
        if grounding:
            yield GroundingChunks(chunks=grounding)
        if calls:
            yield ToolCallRequest(calls=calls)


def _error_message(response: httpx.Response) -> str:
    """Pull the human-readable message out of a Gemini error body."""
    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError):
        return response.text
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return response.text


class GeminiBackend(ModelBackend):
    """Creates Gemini chat sessions sharing one HTTP client."""

    def __init__(
        self,
        base_url: str = GEMINI_BASE_URL,
        allowed_models: Sequence[str] | None = None,
        streaming: bool = False,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = (base_url or GEMINI_BASE_URL).rstrip("/")
        self.allowed_models = list(allowed_models or [])
        self.streaming = streaming
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    def create_session(
        self,
        settings: SessionSettings,
        history: list[dict[str, Any]] | None = None,
    ) -> GeminiSession:
        api_key = (
            (settings.api_key or "").strip()
            or os.environ.get("GEMINI_API_KEY", "").strip()
            or os.environ.get("API_KEY", "").strip()
        )
        if not api_key:
            raise ConfigurationError(
                "Gemini API Key is not configured. Please provide one in the settings "
                "or set the GEMINI_API_KEY environment variable."
            )
        if self.allowed_models and settings.model not in self.allowed_models:
            raise LLMError(f"Model '{settings.model}' is not supported.")
        return GeminiSession(
            client=self.client,
            settings=settings,
            api_key=api_key,
            base_url=self.base_url,
            history=history,
            streaming=self.streaming,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


def create_backend(
    provider: str = "gemini",
    base_url: str | None = None,
    allowed_models: Sequence[str] | None = None,
    streaming: bool = False,
    timeout: float = 120.0,
) -> ModelBackend:
    """Create a model backend.

    Args:
        provider: Provider name (only ``gemini`` is supported)
        base_url: Optional API base URL override
        allowed_models: Model ids sessions may be opened with
        streaming: Use server-sent events and emit text deltas
        timeout: HTTP timeout in seconds

    Returns:
        Configured ModelBackend instance
    """
    normalized = str(provider or "").strip().lower()
    if normalized in {"gemini", "google"}:
        return GeminiBackend(
            base_url=base_url or GEMINI_BASE_URL,
            allowed_models=allowed_models,
            streaming=streaming,
            timeout=timeout,
        )
    raise ValueError(f"Provider '{provider}' not supported. Use 'gemini'.")
