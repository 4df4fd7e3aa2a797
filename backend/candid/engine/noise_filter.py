import re
from typing import Optional, Iterable

from candid.models.session import Role, Turn

MIN_UTTERANCE_LENGTH = 2

FILLER_PHRASES = (
    "thank you",
    "hello",
    "hi",
    "okay",
    "um+",
    "ah+",
)


def _compile(phrases: Iterable[str]) -> re.Pattern:
    return re.compile(r"^(?:" + "|".join(phrases) + r")$", re.IGNORECASE)


class NoiseFilter:
    """Decides whether recognized speech is interview content at all"""

    def __init__(self, fillers: Iterable[str] = FILLER_PHRASES, min_length: int = MIN_UTTERANCE_LENGTH):
        self.min_length = min_length
        self._filler_re = _compile(fillers)

    def is_noise(self, text: Optional[str]) -> bool:
        if not text or len(text) < self.min_length:
            return True
        return bool(self._filler_re.match(text))

    def is_echo(self, last_turn: Optional[Turn], text: Optional[str]) -> bool:
        # The recognizer picked up our own synthesized speech
        return (
            last_turn is not None
            and last_turn.role == Role.ASSISTANT
            and last_turn.content == text
        )

    def accepts(self, last_turn: Optional[Turn], text: Optional[str]) -> bool:
        return not self.is_noise(text) and not self.is_echo(last_turn, text)


noise_filter = NoiseFilter()
