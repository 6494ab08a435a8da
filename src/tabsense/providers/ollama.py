"""Providers backed by a local Ollama server."""

import asyncio
import json
import logging
import math
from typing import Any, AsyncIterator, Mapping, Optional, Sequence

import httpx

from ..config import OllamaConfig
from .base import Availability, DownloadMonitor

logger = logging.getLogger(__name__)

LANGUAGE_NAMES = {
    "en": "English",
    "es": "Spanish",
    "ja": "Japanese",
    "fr": "French",
    "de": "German",
    "pt": "Portuguese",
    "it": "Italian",
    "zh": "Chinese",
    "ko": "Korean",
    "ru": "Russian",
}

SUMMARY_TYPES = {
    "tldr": "a short TL;DR",
    "key-points": "the key points as a list",
    "teaser": "an intriguing teaser",
    "headline": "a single headline",
}

SUMMARY_LENGTHS = {
    "short": "Keep it very brief.",
    "medium": "Keep it to one paragraph.",
    "long": "Be thorough but stay focused.",
}


class OllamaError(Exception):
    """Raised when an Ollama request fails."""

    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class OllamaClient:
    """Async client for the Ollama HTTP API."""

    def __init__(
        self,
        model: str = "llama3.2:3b",
        host: str = "http://localhost:11434",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            model: Ollama model name (e.g., "llama3.2:3b").
            host: Ollama API host URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used by tests).
        """
        self.model = model
        self._host = host.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._pulls: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls, config: OllamaConfig, transport: Optional[httpx.AsyncBaseTransport] = None
    ) -> "OllamaClient":
        return cls(model=config.model, host=config.host, timeout=config.timeout, transport=transport)

    @property
    def pulling(self) -> bool:
        """Whether a model pull is in progress."""
        return any(not task.done() for task in self._pulls)

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._host,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Cancel pulls and close the HTTP client."""
        for task in list(self._pulls):
            task.cancel()
        if self._pulls:
            await asyncio.gather(*self._pulls, return_exceptions=True)
        if self._client:
            await self._client.aclose()
            self._client = None

    async def has_model(self) -> bool:
        """Check whether the configured model is present locally.

        Raises:
            OllamaError: If the server cannot be reached.
        """
        client = await self._ensure_client()
        try:
            response = await client.get("/api/tags")
        except httpx.ConnectError as e:
            raise OllamaError(
                f"Connection to Ollama at {self._host} failed. Is it running?",
                retryable=True,
            ) from e
        except httpx.TimeoutException as e:
            raise OllamaError("Ollama request timed out", retryable=True) from e

        if response.status_code != 200:
            raise OllamaError(
                f"Ollama API error {response.status_code}: {response.text}",
                retryable=response.status_code >= 500,
            )

        names = [m.get("name", "") for m in response.json().get("models", [])]
        if ":" in self.model:
            return self.model in names
        # Untagged names match any tag of the same model
        return any(name.split(":")[0] == self.model for name in names)

    async def availability(self) -> Availability:
        """Map server and model presence onto `Availability`."""
        try:
            present = await self.has_model()
        except OllamaError as e:
            logger.warning(f"Ollama unavailable: {e}")
            return Availability.UNAVAILABLE

        if present:
            return Availability.AVAILABLE
        if self.pulling:
            return Availability.DOWNLOADING
        return Availability.DOWNLOADABLE

    def start_pull(self, monitor: Optional[DownloadMonitor] = None) -> asyncio.Task:
        """Start pulling the model in the background."""
        task = asyncio.ensure_future(self.pull(monitor))
        self._pulls.add(task)
        task.add_done_callback(self._pulls.discard)
        return task

    async def pull(self, monitor: Optional[DownloadMonitor] = None) -> bool:
        """Pull the model, reporting to `monitor`.

        Returns:
            True if the pull reported success. Failures are reported to
            the monitor rather than raised.
        """
        client = await self._ensure_client()
        logger.info(f"Pulling Ollama model {self.model}")

        try:
            async with client.stream(
                "POST",
                "/api/pull",
                json={"model": self.model, "stream": True},
                timeout=httpx.Timeout(None, connect=10.0),
            ) as response:
                if response.status_code != 200:
                    error_text = await response.aread()
                    raise OllamaError(
                        f"Ollama pull error {response.status_code}: {error_text.decode()}",
                        retryable=response.status_code >= 500,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Failed to parse Ollama pull status: {line}")
                        continue

                    if "error" in data:
                        raise OllamaError(f"Model download failed: {data['error']}")

                    if data.get("status") == "success":
                        logger.info(f"Pulled Ollama model {self.model}")
                        if monitor is not None:
                            monitor.complete()
                        return True

                    if monitor is not None:
                        total = data.get("total")
                        completed = data.get("completed")
                        ratio = completed / total if total and completed is not None else None
                        monitor.progress(ratio)

            raise OllamaError("Model download ended without success status")

        except asyncio.CancelledError:
            if monitor is not None:
                monitor.fail(OllamaError("Model download cancelled"))
            raise
        except Exception as e:
            if isinstance(e, OllamaError):
                error = e
            elif isinstance(e, httpx.ConnectError):
                error = OllamaError(f"Network connection to Ollama at {self._host} failed", retryable=True)
            elif isinstance(e, httpx.TimeoutException):
                error = OllamaError("Model download timed out", retryable=True)
            else:
                error = OllamaError(f"Unexpected error during model download: {e}")
            logger.error(f"Model pull failed: {error}")
            if monitor is not None:
                monitor.fail(error)
            return False

    async def generate(self, prompt: str, options: Optional[Mapping[str, Any]] = None) -> str:
        """Get a complete, non-streamed completion."""
        client = await self._ensure_client()
        payload: dict[str, Any] = {"model": self.model, "prompt": prompt, "stream": False}
        if options:
            payload["options"] = dict(options)

        try:
            response = await client.post("/api/generate", json=payload)
        except httpx.ConnectError as e:
            raise OllamaError(
                f"Connection to Ollama at {self._host} failed. Is it running?",
                retryable=True,
            ) from e
        except httpx.TimeoutException as e:
            raise OllamaError("Ollama request timed out", retryable=True) from e

        if response.status_code != 200:
            raise OllamaError(
                f"Ollama API error {response.status_code}: {response.text}",
                retryable=response.status_code >= 500,
            )
        return response.json().get("response", "")

    async def stream_generate(
        self, prompt: str, options: Optional[Mapping[str, Any]] = None
    ) -> AsyncIterator[str]:
        """Stream a completion, yielding text chunks.

        Raises:
            OllamaError: On API errors.
        """
        if not prompt.strip():
            return

        client = await self._ensure_client()
        payload: dict[str, Any] = {"model": self.model, "prompt": prompt, "stream": True}
        if options:
            payload["options"] = dict(options)

        preview = prompt[:80]
        logger.info(f"Streaming from Ollama: '{preview}{'...' if len(prompt) > 80 else ''}'")

        try:
            async with client.stream("POST", "/api/generate", json=payload) as response:
                if response.status_code != 200:
                    error_text = await response.aread()
                    raise OllamaError(
                        f"Ollama API error {response.status_code}: {error_text.decode()}",
                        retryable=response.status_code >= 500,
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        logger.warning(f"Failed to parse Ollama response: {line}")
                        continue

                    if "error" in data:
                        raise OllamaError(f"Ollama generation failed: {data['error']}")
                    if data.get("response"):
                        yield data["response"]
                    if data.get("done", False):
                        break

        except httpx.ConnectError as e:
            logger.error(f"Failed to connect to Ollama at {self._host}: {e}")
            raise OllamaError(
                f"Connection to Ollama at {self._host} failed. Is it running?",
                retryable=True,
            ) from e

        except httpx.TimeoutException as e:
            logger.error(f"Ollama request timed out: {e}")
            raise OllamaError("Ollama request timed out", retryable=True) from e


class OllamaSession:
    """A prompt session on the shared client."""

    def __init__(self, client: OllamaClient, system: Optional[str] = None) -> None:
        self._client = client
        self._system = system
        self._destroyed = False

    async def prompt_streaming(self, prompt: str) -> AsyncIterator[str]:
        if self._destroyed:
            raise OllamaError("Session has been destroyed")
        text = f"{self._system}\n\n{prompt}" if self._system else prompt
        async for chunk in self._client.stream_generate(text):
            yield chunk

    async def destroy(self) -> None:
        self._destroyed = True


class OllamaSessionProvider:
    """Session provider for the configured Ollama model.

    `create` returns as soon as a pull has been started; the pull's
    outcome is reported through the monitor.
    """

    def __init__(self, client: OllamaClient, system: Optional[str] = None) -> None:
        self._client = client
        self._system = system

    async def availability(self, options: Mapping[str, Any]) -> Availability:
        return await self._client.availability()

    async def create(
        self, options: Mapping[str, Any], monitor: Optional[DownloadMonitor] = None
    ) -> OllamaSession:
        if not await self._client.has_model():
            if monitor is not None:
                monitor.attach()
            self._client.start_pull(monitor)
        return OllamaSession(self._client, self._system)


class OllamaSummarizer:
    """Summarizer that prompts the model with a fixed scaffold."""

    def __init__(
        self,
        client: OllamaClient,
        options: Mapping[str, Any],
        context_window: int = 4096,
        chars_per_token: int = 4,
    ) -> None:
        self._client = client
        self._options = dict(options)
        self._chars_per_token = chars_per_token
        self.input_quota: Optional[int] = context_window

    def _prompt(self, text: str, context: Optional[str] = None) -> str:
        summary_type = SUMMARY_TYPES.get(self._options.get("type", "tldr"), "a summary")
        length = SUMMARY_LENGTHS.get(self._options.get("length", "medium"), "")
        language = LANGUAGE_NAMES.get(self._options.get("output_language", "en"), "English")

        parts = [f"Write {summary_type} of the text below in {language}. {length}".strip()]
        if self._options.get("format") == "markdown":
            parts.append("Format the answer as Markdown.")
        else:
            parts.append("Reply in plain text without Markdown.")
        for extra in (self._options.get("shared_context"), context):
            if extra:
                parts.append(extra)
        parts.append(f"Text:\n{text}")
        return "\n\n".join(parts)

    async def measure_input_usage(self, text: str) -> int:
        return math.ceil(len(self._prompt(text)) / self._chars_per_token)

    async def summarize(self, text: str, context: Optional[str] = None) -> str:
        result = await self._client.generate(
            self._prompt(text, context),
            options={"num_ctx": self.input_quota} if self.input_quota else None,
        )
        return result.strip()


class OllamaSummarizerProvider:
    def __init__(self, client: OllamaClient, context_window: int = 4096) -> None:
        self._client = client
        self._context_window = context_window

    async def availability(self) -> Availability:
        return await self._client.availability()

    async def create(self, options: Mapping[str, Any]) -> OllamaSummarizer:
        if not await self._client.has_model():
            raise OllamaError(f"Model {self._client.model} has not been downloaded")
        return OllamaSummarizer(self._client, options, self._context_window)


class OllamaTranslator:
    def __init__(self, client: OllamaClient, source: str, target: str) -> None:
        self._client = client
        self.source = source
        self.target = target

    async def translate(self, text: str) -> str:
        source = LANGUAGE_NAMES.get(self.source, self.source)
        target = LANGUAGE_NAMES.get(self.target, self.target)
        prompt = (
            f"Translate the following text from {source} to {target}. "
            f"Reply with the translation only.\n\n{text}"
        )
        return (await self._client.generate(prompt)).strip()


class OllamaTranslatorProvider:
    """Translators for the language pairs the model is trusted with."""

    def __init__(self, client: OllamaClient, languages: Sequence[str]) -> None:
        self._client = client
        self._languages = {lang.lower() for lang in languages}

    def supports(self, source: str, target: str) -> bool:
        return source in self._languages and target in self._languages

    async def availability(self, source: str, target: str) -> Availability:
        if not self.supports(source, target):
            return Availability.UNAVAILABLE
        return await self._client.availability()

    async def create(
        self, source: str, target: str, monitor: Optional[DownloadMonitor] = None
    ) -> OllamaTranslator:
        if not self.supports(source, target):
            raise OllamaError(f"Translation not available for {source} to {target}")
        if not await self._client.has_model():
            if monitor is not None:
                monitor.attach()
            if not await self._client.pull(monitor):
                raise OllamaError(f"Model download failed for {source}-{target} translation")
        return OllamaTranslator(self._client, source, target)
