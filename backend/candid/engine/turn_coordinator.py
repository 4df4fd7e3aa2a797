import logging
from typing import Callable, List, Optional

from candid.models.session import TurnState

logger = logging.getLogger(__name__)

ACTIVE_STATES = (TurnState.BOT_SPEAKING, TurnState.USER_TURN, TurnState.AWAITING_MODEL)
BOT_ACTIVE_STATES = (TurnState.BOT_SPEAKING, TurnState.AWAITING_MODEL)


class TurnCoordinator:
    """Single source of truth for who may speak in one session.

    States: IDLE -> BOT_SPEAKING -> USER_TURN -> AWAITING_MODEL -> BOT_SPEAKING ...
    and any state -> ENDED. Capture (microphone and recognition) is only
    allowed in USER_TURN, and USER_TURN is only entered when no bot audio is
    queued or playing and no model call is in flight.

    Every clip handed to the player is counted with ``audio_queued`` and
    released with ``playback_ended``; only the release that drains the count
    gives the turn back to the user.
    """

    def __init__(self, name: str = "session", on_preempt: Optional[Callable[[], None]] = None):
        self.name = name
        self.state = TurnState.IDLE
        self.listening = False
        self.pending_playbacks = 0
        self.model_in_flight = False
        self.on_preempt = on_preempt
        self._listeners: List[Callable[[TurnState, TurnState], None]] = []

    def add_listener(self, listener: Callable[[TurnState, TurnState], None]) -> None:
        self._listeners.append(listener)

    @property
    def active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def bot_active(self) -> bool:
        return self.state in BOT_ACTIVE_STATES

    @property
    def capture_enabled(self) -> bool:
        return self.state == TurnState.USER_TURN

    # --- transitions ---

    def start(self) -> bool:
        if self.state != TurnState.IDLE:
            logger.warning(f"⚠️ [TURN] {self.name}: start ignored in state {self.state.value}")
            return False
        self._transition(TurnState.BOT_SPEAKING)
        return True

    def audio_queued(self) -> None:
        """A bot audio clip was handed to the player"""
        if not self.active:
            return
        self.pending_playbacks += 1
        self._transition(TurnState.BOT_SPEAKING)

    def playback_started(self) -> bool:
        if not self.active:
            return False
        if self.state == TurnState.USER_TURN and self.on_preempt:
            # Buffered user speech belongs to the turn that is ending now
            self.on_preempt()
        self.pending_playbacks = max(self.pending_playbacks, 1)
        self._transition(TurnState.BOT_SPEAKING)
        return True

    def playback_ended(self) -> bool:
        """Returns True when this release handed the turn back to the user"""
        if self.state not in BOT_ACTIVE_STATES:
            logger.debug(f"🔍 [TURN] {self.name}: playback end ignored in state {self.state.value}")
            return False
        self.pending_playbacks = max(0, self.pending_playbacks - 1)
        if self.pending_playbacks == 0 and self.state == TurnState.BOT_SPEAKING:
            self._transition(self._resting_state())
        return self.state == TurnState.USER_TURN

    def utterance_submitted(self) -> bool:
        """Capture stops the instant an utterance leaves, before any reply exists"""
        if not self.active:
            return False
        self.model_in_flight = True
        if self.pending_playbacks == 0:
            self._transition(TurnState.AWAITING_MODEL)
        else:
            self._transition(TurnState.BOT_SPEAKING)
        return True

    begin_model_call = utterance_submitted

    def settle(self) -> None:
        """The model round trip finished (reply delivered, silent, or failed)"""
        self.model_in_flight = False
        if not self.active:
            return
        if self.pending_playbacks > 0:
            self._transition(TurnState.BOT_SPEAKING)
        else:
            self._transition(TurnState.USER_TURN)

    def end(self) -> None:
        self.model_in_flight = False
        self.pending_playbacks = 0
        self._transition(TurnState.ENDED)

    def reset(self) -> None:
        """Back to IDLE so a failed opening can be started again"""
        if self.state == TurnState.ENDED:
            return
        self.model_in_flight = False
        self.pending_playbacks = 0
        self._transition(TurnState.IDLE)

    # --- capture gating ---

    def start_listening(self, playback_active: bool = False) -> bool:
        """Idempotent; returns True only when capture actually starts"""
        if self.listening or playback_active or not self.capture_enabled:
            return False
        self.listening = True
        return True

    def stop_listening(self) -> bool:
        if not self.listening:
            return False
        self.listening = False
        return True

    def _resting_state(self) -> TurnState:
        return TurnState.AWAITING_MODEL if self.model_in_flight else TurnState.USER_TURN

    def _transition(self, new_state: TurnState) -> None:
        old_state = self.state
        if new_state != TurnState.USER_TURN:
            self.listening = False
        if old_state == new_state:
            return
        self.state = new_state
        logger.info(f"🔄 [TURN] {self.name}: {old_state.value} -> {new_state.value}")
        for listener in list(self._listeners):
            listener(old_state, new_state)
