import asyncio
import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class SpeechSegmenter:
    """Debounces recognized speech fragments into whole utterances.

    Every fragment is space-joined onto the buffer and (re)starts a countdown
    of ``pause_ms``. When the countdown runs out the trimmed buffer is handed
    to ``on_utterance`` once and the buffer is cleared. A threshold of 0
    flushes on every fragment (streaming-audio mode).

    The countdown is the only timer-driven event in a session. It is owned by
    the segmenter and always canceled before being rescheduled.
    """

    def __init__(self, pause_ms: int, on_utterance: Callable[[str], None], name: str = "segmenter"):
        if pause_ms < 0:
            raise ValueError("pause_ms must not be negative")
        self.pause_ms = pause_ms
        self.on_utterance = on_utterance
        self.name = name
        self._fragments: List[str] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    @property
    def buffer(self) -> str:
        return " ".join(self._fragments)

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def feed(self, fragment: str) -> None:
        if self._closed:
            return
        fragment = (fragment or "").strip()
        if not fragment:
            return

        self._fragments.append(fragment)
        logger.debug(f"🔍 [SEGMENTER] {self.name} buffered fragment: {fragment}")

        if self.pause_ms == 0:
            self.flush()
            return
        self._schedule()

    def touch(self) -> None:
        """Editor activity: the user is still in turn, restart a running countdown"""
        if self._timer is not None:
            self._schedule()

    def flush(self) -> Optional[str]:
        """Emit the buffered utterance now. Returns it, or None when nothing was buffered."""
        self.cancel()
        text = self.buffer.strip()
        self._fragments = []
        if not text:
            return None

        logger.info(f"✂️ [SEGMENTER] {self.name} utterance ready: {text[:50]}")
        self.on_utterance(text)
        return text

    def discard(self) -> None:
        self.cancel()
        self._fragments = []

    def cancel(self) -> None:
        # Safe on an already-fired or already-canceled timer
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def close(self) -> None:
        self.discard()
        self._closed = True

    def _schedule(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.pause_ms / 1000, self._expire)

    def _expire(self) -> None:
        self._timer = None
        if not self._closed:
            self.flush()
