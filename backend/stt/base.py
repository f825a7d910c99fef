"""
Speech recognizer contract.

This module defines the *interface only*: no transport, no buffering, no
retries live here.

Key invariants:
- One recognizer instance serves one STT session (one WebSocket client).
- The recognizer emits events through the sink given to start(); it never
  talks to the client socket directly.
- stop() is idempotent and safe before start().
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Union


@dataclass(frozen=True)
class Recognizing:
    """Partial (interim) transcript."""
    text: str
    language: str


@dataclass(frozen=True)
class Recognized:
    """Final transcript for one utterance."""
    text: str
    language: str
    confidence: float


@dataclass(frozen=True)
class RecognizerFailed:
    """Vendor-side failure after start; the session is unusable."""
    message: str


RecognizerEvent = Union[Recognizing, Recognized, RecognizerFailed]
EventSink = Callable[[RecognizerEvent], Awaitable[None]]


class SpeechRecognizer(ABC):
    """
    Abstract streaming recognizer.

    Implementations are responsible for:
    - Opening the vendor stream in start() (raise VendorError on failure)
    - Accepting PCM16 16 kHz mono chunks via send_audio()
    - Emitting Recognizing / Recognized / RecognizerFailed events
    """

    @abstractmethod
    async def start(self, *, language: str, emit: EventSink) -> None:
        """
        Open the vendor stream.

        Returns once the vendor accepted the stream; the caller reports the
        session as started only after this returns.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_audio(self, pcm_bytes: bytes) -> None:
        """Forward one PCM16 chunk. Chunks sent after stop() are ignored."""
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """Close the vendor stream and release resources."""
        raise NotImplementedError


RecognizerFactory = Callable[[], SpeechRecognizer]
