from abc import ABC, abstractmethod
from typing import Sequence

from candid.models.session import Turn


class BaseResponseGenerator(ABC):
    @abstractmethod
    async def generate(self, turns: Sequence[Turn]) -> str:
        """Return the next assistant line for the ordered conversation"""
        pass
