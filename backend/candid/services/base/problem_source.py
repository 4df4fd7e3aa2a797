from abc import ABC, abstractmethod

from candid.models.session import Problem


class BaseProblemSource(ABC):
    @abstractmethod
    def pick(self) -> Problem:
        pass
