"""Spoken (or logged) narration with drop-while-busy semantics."""

import logging
import random
import threading
from typing import List, Protocol, Sequence

import config

logger = logging.getLogger(__name__)


class NarratorProtocol(Protocol):
    """Anything the session engine can hand phrases to."""

    def speak(self, text: str) -> bool:
        """
        Speak text unless already speaking.

        Returns:
            True if the phrase was accepted, False if it was dropped.
        """
        ...


def pick_phrase(rng: random.Random, phrases: Sequence[str], **fields) -> str:
    """
    Pick a phrase uniformly (repeats allowed) and fill its placeholders.

    Args:
        rng: Session random source.
        phrases: Non-empty phrase set, optionally with {placeholders}.
        **fields: Values for the placeholders, e.g. seconds=30.
    """
    return rng.choice(list(phrases)).format(**fields)


class LogNarrator:
    """
    Narrator that only logs; used for silent runs and tests.

    The most recent phrases are kept in `spoken` (at most `history` of them).
    """

    def __init__(self, history: int = 100):
        self.history = history
        self.spoken: List[str] = []

    def speak(self, text: str) -> bool:
        logger.info(f"Narration: {text}")
        self.spoken.append(text)
        if len(self.spoken) > self.history:
            del self.spoken[:-self.history]
        return True


class SpeechNarrator:
    """
    Text-to-speech narrator backed by pyttsx3.

    Speech runs on a daemon thread so speak() never blocks the session loop.
    A phrase requested while another is still being spoken is dropped, never
    queued, and never interrupts the current one.
    """

    def __init__(self, rate: int = None, voice_id: str = None):
        self.rate = rate if rate is not None else config.VOICE_RATE
        self.voice_id = voice_id
        self._speaking = threading.Event()

    @property
    def is_speaking(self) -> bool:
        return self._speaking.is_set()

    def speak(self, text: str) -> bool:
        if self._speaking.is_set():
            logger.debug(f"Narrator busy, dropping: {text}")
            return False

        self._speaking.set()
        logger.info(f"Narration: {text}")
        threading.Thread(target=self._say, args=(text,), daemon=True).start()
        return True

    def _say(self, text: str) -> None:
        try:
            # pyttsx3 engines are not shareable across threads; one per utterance
            import pyttsx3
            engine = pyttsx3.init()
            engine.setProperty("rate", self.rate)
            if self.voice_id:
                engine.setProperty("voice", self.voice_id)
            engine.say(text)
            engine.runAndWait()
        except Exception as e:
            logger.warning(f"Speech playback error: {e}")
        finally:
            self._speaking.clear()


def create_narrator(voice_enabled: bool = None) -> NarratorProtocol:
    """
    Create the narrator selected by configuration.

    Args:
        voice_enabled: Override for config.VOICE_ENABLED.

    Returns:
        SpeechNarrator when voice is enabled, otherwise LogNarrator.
    """
    enabled = config.VOICE_ENABLED if voice_enabled is None else voice_enabled
    if enabled:
        logger.info("Using speech narrator")
        return SpeechNarrator()
    logger.info("Voice disabled, narration will be logged only")
    return LogNarrator()
