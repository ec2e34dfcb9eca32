"""
Narration package for Stillwatch.

Narrators receive phrases from the session engine and either speak them
(pyttsx3) or log them.
"""

from narration.narrator import (
    LogNarrator,
    NarratorProtocol,
    SpeechNarrator,
    create_narrator,
    pick_phrase,
)

__all__ = ["LogNarrator", "NarratorProtocol", "SpeechNarrator", "create_narrator", "pick_phrase"]
