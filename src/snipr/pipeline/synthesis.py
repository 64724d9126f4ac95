"""
Speech Synthesis Adapter.

This module provides:
    - VoiceParams: Voice, language and prosody for a render
    - build_ssml(): SSML envelope for one chunk
    - EngineCall: Per-call cancellation handle
    - BaseSpeechEngine: Abstract engine (SSML in, EngineResult out)
    - AzureSpeechEngine: Azure Cognitive Services text-to-speech REST API
    - SpeechSynthesizer: Runs engine calls under a hard wall-clock timeout
    - get_engine(): Engine factory

Call Contract:
    synthesize(chunk) either returns non-empty audio bytes or raises:
        - SynthesisTimeout: the call exceeded timeout_s (default 300s);
          the call is abandoned and only that call is aborted
        - SynthesisError: the engine reported failure, raised, or
          returned an empty buffer

There is no retry at this layer.

Implementing a New Engine:
    1. Subclass BaseSpeechEngine
    2. Implement speak_ssml(); register cancellation with call.on_abort()
    3. Register it in get_engine()
"""
from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from time import perf_counter
from typing import Callable, List, Optional
from xml.sax.saxutils import escape, quoteattr

import httpx

from snipr.core.config import Defaults, SynthesisConfig
from snipr.core.errors import SynthesisError, SynthesisTimeout
from snipr.core.logging import get_logger, info, verbose, warn
from snipr.core.metrics import metrics
from snipr.utils.timeit import timeit

_LOG = get_logger("snipr.synthesis")


@dataclass(frozen=True)
class VoiceParams:
    """Voice and prosody of a render."""
    voice_id: str = Defaults.SYNTHESIS_VOICE_ID
    language: str = Defaults.SYNTHESIS_LANGUAGE
    pitch: str = Defaults.SYNTHESIS_PITCH
    rate: str = Defaults.SYNTHESIS_RATE

    @classmethod
    def from_config(cls, config: SynthesisConfig) -> "VoiceParams":
        return cls(
            voice_id=config.voice_id,
            language=config.language,
            pitch=config.pitch,
            rate=config.rate,
        )


@dataclass
class EngineResult:
    """
    Outcome of one engine call.

    Attributes:
        completed: True when the engine reports a finished render.
        audio: Rendered audio (MP3).
        diagnostic: Engine-provided detail when completed is False.
    """
    completed: bool
    audio: bytes = b""
    diagnostic: str = ""


def build_ssml(text: str, voice: VoiceParams) -> str:
    """
    Wrap text in an SSML speak/voice/prosody envelope.

    Text and attribute values are XML-escaped, so article text containing
    markup characters cannot alter the document.
    """
    return (
        '<speak version="1.0" xmlns="http://www.w3.org/2001/10/synthesis" '
        f"xml:lang={quoteattr(voice.language)}>"
        f"<voice name={quoteattr(voice.voice_id)}>"
        f"<prosody pitch={quoteattr(voice.pitch)} rate={quoteattr(voice.rate)}>"
        f"{escape(text)}"
        "</prosody></voice></speak>"
    )


# =============================================================================
# Engines
# =============================================================================

class EngineCall:
    """
    Cancellation handle for one engine call.

    Engines register cleanup with on_abort() (closing the connection the
    call is using). abort() runs those callbacks once; a callback
    registered after abort() runs immediately. Aborting one call never
    touches another call's resources.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []
        self.aborted = False
        self.started = threading.Event()
        self.started_at = 0.0

    def mark_started(self) -> None:
        self.started_at = perf_counter()
        self.started.set()

    def on_abort(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self.aborted:
                self._callbacks.append(callback)
                return
        callback()

    def abort(self) -> None:
        with self._lock:
            if self.aborted:
                return
            self.aborted = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()


class BaseSpeechEngine:
    """
    Abstract speech engine.

    Subclasses implement speak_ssml(). When a call exceeds its timeout the
    synthesizer aborts that call's EngineCall from another thread; engines
    that can cancel register their cleanup on it.
    """
    name: str = "base"

    def __init__(self, config: Optional[SynthesisConfig] = None):
        self.config = config or SynthesisConfig()
        self.logger = get_logger(f"snipr.engine.{self.name}")

    def speak_ssml(self, ssml: str, call: Optional[EngineCall] = None) -> EngineResult:
        raise NotImplementedError

    def close(self) -> None:
        pass


class AzureSpeechEngine(BaseSpeechEngine):
    """
    Azure text-to-speech over the REST endpoint.

    POST https://{region}.tts.speech.microsoft.com/cognitiveservices/v1
    with the SSML body; the response body is the MP3 audio.

    Each call opens its own httpx.Client so a timed-out call can be torn
    down without disturbing concurrent calls from other jobs.
    """
    name = "azure"

    def __init__(self, config: Optional[SynthesisConfig] = None, transport: Optional[httpx.BaseTransport] = None):
        super().__init__(config)
        self._transport = transport

    @property
    def endpoint(self) -> str:
        if self.config.endpoint:
            return self.config.endpoint
        return f"https://{self.config.region}.tts.speech.microsoft.com/cognitiveservices/v1"

    def _new_client(self) -> httpx.Client:
        return httpx.Client(
            transport=self._transport,
            timeout=httpx.Timeout(self.config.timeout_s, connect=10.0),
        )

    def speak_ssml(self, ssml: str, call: Optional[EngineCall] = None) -> EngineResult:
        if not self.config.subscription_key:
            return EngineResult(completed=False, diagnostic="SNIPR_SPEECH_KEY is not set")

        call = call or EngineCall()
        if call.aborted:
            return EngineResult(completed=False, diagnostic="aborted before request")

        headers = {
            "Ocp-Apim-Subscription-Key": self.config.subscription_key,
            "Content-Type": "application/ssml+xml",
            "X-Microsoft-OutputFormat": self.config.output_format,
            "User-Agent": "snipr",
        }
        client = self._new_client()
        call.on_abort(client.close)
        try:
            response = client.post(self.endpoint, content=ssml.encode("utf-8"), headers=headers)
        except httpx.HTTPError as e:
            return EngineResult(completed=False, diagnostic=f"{type(e).__name__}: {e}")
        finally:
            client.close()

        if response.status_code != 200:
            return EngineResult(
                completed=False,
                diagnostic=f"HTTP {response.status_code}: {response.text[:200]}",
            )
        return EngineResult(completed=True, audio=response.content)


def get_engine(config: Optional[SynthesisConfig] = None) -> BaseSpeechEngine:
    """
    Create the configured speech engine.

    Raises:
        ValueError: If the engine name is unknown.
    """
    config = config or SynthesisConfig()
    if config.engine == "azure":
        engine = AzureSpeechEngine(config)
    else:
        raise ValueError(f"Unknown speech engine: {config.engine}")
    info(_LOG, "engine_ready", engine=engine.name, voice=config.voice_id, region=config.region)
    return engine


# =============================================================================
# Synthesizer
# =============================================================================

class SpeechSynthesizer:
    """
    Renders one chunk at a time under a hard timeout.

    Engine calls run on a private thread pool so the caller can stop
    waiting after timeout_s. The clock starts when the engine call
    begins; time queued behind other jobs' calls is bounded separately
    by the same timeout. A timed-out call keeps its worker thread until
    the engine returns; aborting its EngineCall is the engine's chance to
    end it sooner.
    """

    def __init__(
        self,
        engine: BaseSpeechEngine,
        config: Optional[SynthesisConfig] = None,
        voice: Optional[VoiceParams] = None,
        max_workers: Optional[int] = None,
    ):
        self._engine = engine
        self._config = config or engine.config
        self._voice = voice or VoiceParams.from_config(self._config)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers or self._config.max_workers,
            thread_name_prefix="snipr-synth",
        )

    @property
    def engine(self) -> BaseSpeechEngine:
        return self._engine

    @property
    def timeout_s(self) -> float:
        return self._config.timeout_s

    def _run(self, ssml: str, call: EngineCall) -> EngineResult:
        call.mark_started()
        if call.aborted:
            return EngineResult(completed=False, diagnostic="aborted before start")
        return self._engine.speak_ssml(ssml, call)

    def _await(self, future: Future, call: EngineCall) -> EngineResult:
        if not call.started.wait(self.timeout_s):
            raise FutureTimeoutError()
        remaining = self.timeout_s - (perf_counter() - call.started_at)
        return future.result(timeout=max(remaining, 0.0))

    def synthesize(self, chunk: str, voice: Optional[VoiceParams] = None) -> bytes:
        """
        Render one chunk to audio.

        Raises:
            SynthesisTimeout: The engine call exceeded timeout_s.
            SynthesisError: The engine failed or returned no audio.
        """
        ssml = build_ssml(chunk, voice or self._voice)
        call = EngineCall()
        future: Future = self._executor.submit(self._run, ssml, call)

        with timeit("synthesis") as t:
            try:
                result: EngineResult = self._await(future, call)
            except FutureTimeoutError:
                future.cancel()
                call.abort()
                metrics.record_chunk("timeout")
                warn(_LOG, "synthesis_timeout", timeout_s=self.timeout_s, chars=len(chunk))
                raise SynthesisTimeout(
                    f"Speech synthesis timeout after {self.timeout_s:g}s",
                    {"timeout_s": self.timeout_s},
                )
            except Exception as e:
                metrics.record_chunk("error")
                raise SynthesisError(f"Speech synthesis failed: {e}") from e

        if not result.completed:
            metrics.record_chunk("error")
            raise SynthesisError(
                f"Speech synthesis failed: {result.diagnostic or 'unknown engine error'}",
                {"engine": self._engine.name},
            )
        if not result.audio:
            metrics.record_chunk("error")
            raise SynthesisError("Generated audio is empty", {"engine": self._engine.name})

        metrics.record_chunk("ok")
        verbose(_LOG, "chunk_synthesized", chars=len(chunk), bytes=len(result.audio), seconds=round(t.seconds, 4))
        return result.audio

    def close(self) -> None:
        """Stop accepting work; abandoned calls are not waited for."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._engine.close()
