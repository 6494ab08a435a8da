"""Per-tab glue tying the session, summarizer and translators together."""

import logging
from types import MappingProxyType
from typing import Any, AsyncIterator, Optional

import httpx

from .config import Config
from .errors import SessionNotReady
from .lifecycle import Readiness, SessionLifecycleManager
from .progress import ProgressCallback, emit
from .providers.base import (
    Availability,
    KeyValueStore,
    LanguageDetector,
    PageSource,
    SessionProvider,
    SummarizerHandle,
    SummarizerProvider,
    TranslatorProvider,
)
from .providers.ollama import (
    OllamaClient,
    OllamaSessionProvider,
    OllamaSummarizerProvider,
    OllamaTranslatorProvider,
)
from .store import JsonFileStore
from .summarize import SummarizationJob, SummarizationPipeline, SummarizeOptions, resolve_output_language
from .translate import TranslationCache, detect_language, translate_fields

logger = logging.getLogger(__name__)

# Pages shorter than this are not worth summarizing
MIN_PAGE_CHARS = 50

MODEL_LANGUAGE = "en"


class Panel:
    """Everything one tab needs: its own session, pipeline and translators.

    Nothing is shared between panels, so two tabs never see each other's
    session state.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        session_provider: Optional[SessionProvider] = None,
        summarizer_provider: Optional[SummarizerProvider] = None,
        translator_provider: Optional[TranslatorProvider] = None,
        store: Optional[KeyValueStore] = None,
        detector: Optional[LanguageDetector] = None,
        on_status: Optional[ProgressCallback] = None,
    ) -> None:
        self.config = config or Config()
        self._summarizer_provider = summarizer_provider
        self._detector = detector
        self._on_status = on_status
        self._client: Optional[OllamaClient] = None

        self.manager = SessionLifecycleManager(
            session_provider,
            config=self.config.session,
            store=store,
            on_status=on_status,
        )
        self.pipeline = SummarizationPipeline(self.config.summary, self.config.chunking)
        self.translations = TranslationCache(
            translator_provider,
            max_entries=self.config.translation.max_entries,
            on_progress=on_status,
        )

    @classmethod
    def from_config(
        cls,
        config: Config,
        on_status: Optional[ProgressCallback] = None,
        store: Optional[KeyValueStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "Panel":
        """Build a panel backed by the local Ollama server."""
        client = OllamaClient.from_config(config.ollama, transport=transport)
        panel = cls(
            config,
            session_provider=OllamaSessionProvider(client),
            summarizer_provider=OllamaSummarizerProvider(client, config.ollama.context_window),
            translator_provider=OllamaTranslatorProvider(client, config.translation.languages),
            store=store if store is not None else JsonFileStore(config.store.get_path()),
            on_status=on_status,
        )
        panel._client = client
        return panel

    async def close(self) -> None:
        """Drop the session and release the HTTP client."""
        await self.manager.reset()
        await self.manager.drain()
        if self._client is not None:
            await self._client.close()

    async def restore(self) -> int:
        """Restore retry bookkeeping persisted by an earlier run."""
        return await self.manager.restore_bookkeeping()

    async def ensure_ready(self) -> Readiness:
        """Start or join the model download for this tab.

        Call this first on the path triggered by the user action.
        """
        return await self.manager.ensure_ready()

    def status(self) -> dict[str, Any]:
        status = self.manager.status()
        status["translators"] = len(self.translations)
        return status

    # Summaries

    def summarizer_options(self, language: str) -> MappingProxyType:
        summary = self.config.summary
        return MappingProxyType({
            "type": summary.type,
            "format": summary.format,
            "length": summary.length,
            "shared_context": summary.shared_context,
            "expected_input_languages": ("en", "es", "ja"),
            "output_language": language,
        })

    async def _create_summarizer(self, language: str) -> Optional[SummarizerHandle]:
        provider = self._summarizer_provider
        if provider is None:
            return None
        try:
            availability = Availability(await provider.availability())
            if availability is Availability.UNAVAILABLE:
                logger.info("Summarizer unavailable, extractive summary only")
                return None
            return await provider.create(self.summarizer_options(language))
        except Exception as e:
            logger.warning(f"Could not create summarizer: {e}")
            return None

    async def summarize_job(
        self, text: str, exhaustive: bool = False, language: Optional[str] = None
    ) -> SummarizationJob:
        """Summarize `text`, returning the job with the stage that produced it."""
        output_language = resolve_output_language(language, self.config.summary.output_languages)
        summarizer = await self._create_summarizer(output_language)
        options = SummarizeOptions(exhaustive=exhaustive, on_progress=self._on_status)
        job = await self.pipeline.run(text, summarizer, options)
        emit(self._on_status, "done", f"Summary ready ({job.stage or 'empty'}).", 1.0)
        return job

    async def summarize(
        self, text: str, exhaustive: bool = False, language: Optional[str] = None
    ) -> str:
        job = await self.summarize_job(text, exhaustive, language)
        return job.result

    async def summarize_page(self, page: PageSource, exhaustive: bool = False) -> str:
        """Summarize the page in its own language where supported.

        Raises:
            ValueError: If the page has too little text.
        """
        text = await page.get_page_text()
        if len(text.strip()) < MIN_PAGE_CHARS:
            raise ValueError("Not enough content on this page to summarize")
        language = await page.get_page_language()
        return await self.summarize(text, exhaustive=exhaustive, language=language)

    # Translation

    async def translate(self, text: str, source: str, target: str) -> str:
        return await self.translations.translate(text, source, target)

    async def translate_fields(self, data: dict[str, Any], source: str, target: str) -> dict[str, Any]:
        return await translate_fields(self.translations, data, source, target)

    # Chat

    async def _ready_prompt(self, prompt: str, language: Optional[str]) -> tuple[str, str]:
        # ensure_ready must come before any other await on this path
        readiness = await self.ensure_ready()
        if not readiness.ok:
            raise readiness.error or SessionNotReady(f"Session is {readiness.state.name.lower()}")

        if language is None:
            language = await detect_language(prompt, self._detector)
        if language != MODEL_LANGUAGE:
            prompt = await self.translate(prompt, language, MODEL_LANGUAGE)
        return prompt, language

    async def ask_streaming(self, prompt: str, language: Optional[str] = None) -> AsyncIterator[str]:
        """Stream an answer from the session, downloading the model if needed.

        Prompts in another language are translated to English before being
        sent; the streamed answer is left in English.

        Raises:
            SessionError: If the session cannot be made ready or is lost.
        """
        prompt, _ = await self._ready_prompt(prompt, language)
        async for chunk in self.manager.prompt_streaming(prompt):
            yield chunk

    async def ask(self, prompt: str, language: Optional[str] = None) -> str:
        """Ask a question; the answer is translated back to the prompt's language."""
        prompt, language = await self._ready_prompt(prompt, language)
        answer = await self.manager.prompt(prompt)
        if language != MODEL_LANGUAGE:
            answer = await self.translate(answer, MODEL_LANGUAGE, language)
        return answer
