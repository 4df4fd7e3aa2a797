from typing import List, Optional, Tuple

from candid.core.exceptions import SessionClosedError
from candid.models.session import Role, Turn


class ConversationStore:
    """Ordered, append-only turn log for one session.

    The log doubles as model context (``snapshot``) and as the user-facing
    transcript (``transcript``, which hides the system turn). Turns are never
    edited, removed or reordered; a correction is a new turn.
    """

    def __init__(self):
        self._turns: List[Turn] = []
        self._sealed = False

    def append(self, turn: Turn) -> None:
        if self._sealed:
            raise SessionClosedError("conversation is sealed; session has ended")
        if not self._turns and turn.role != Role.SYSTEM:
            raise ValueError("the first turn of a conversation must be the system turn")
        self._turns.append(turn)

    def snapshot(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def transcript(self) -> List[Turn]:
        return [turn for turn in self._turns if turn.role != Role.SYSTEM]

    def last(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    def seal(self) -> None:
        self._sealed = True

    @property
    def sealed(self) -> bool:
        return self._sealed

    @property
    def started(self) -> bool:
        """True once the log holds the system turn and at least one assistant turn"""
        return any(turn.role == Role.ASSISTANT for turn in self._turns)

    def __len__(self) -> int:
        return len(self._turns)
