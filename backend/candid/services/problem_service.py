import json
import logging
import random
from typing import List, Optional

from candid.core.config import settings
from candid.core.exceptions import ExternalServiceError
from candid.models.session import Problem
from candid.services.base.problem_source import BaseProblemSource

logger = logging.getLogger(__name__)


class JSONProblemSource(BaseProblemSource):
    """Problem set read from a JSON array; paid problems are skipped"""

    def __init__(self, path: Optional[str] = None, rng: Optional[random.Random] = None):
        self.path = path or settings.PROBLEM_FILE
        self.rng = rng or random.Random()
        self.problems: List[Problem] = []
        self.load()

    def load(self) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"❌ [PROBLEMS] Failed to load problems from {self.path}: {e}")
            self.problems = []
            return

        self.problems = [
            Problem(
                title=item["title"],
                difficulty=item.get("difficulty", "Unknown"),
                statement=item.get("body", ""),
                examples=item.get("examples", ""),
                constraints=item.get("constraints", ""),
                hints=item.get("hints", []),
                topics=item.get("topics", []),
            )
            for item in raw
            if not item.get("is_paid", False)
        ]
        logger.info(f"📚 [PROBLEMS] Loaded {len(self.problems)} free problems from {self.path}")

    def pick(self) -> Problem:
        if not self.problems:
            raise ExternalServiceError("problems", "no free problems available")
        return self.rng.choice(self.problems)
