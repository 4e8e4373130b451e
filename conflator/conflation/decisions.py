"""
Decision contract for interactive passes

Detection passes never talk to a UI directly: every proposal goes through a
DecisionProvider, wrapped in a DecisionSession that honors the
"don't ask again this session" toggle.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from loguru import logger


class Decision(Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    CANCEL_ALL = "cancel"


@dataclass(frozen=True)
class DecisionResponse:
    decision: Decision
    # stop asking for this prompt id; the same decision is reused
    suppress: bool = False


class DecisionProvider(ABC):
    """Answers proposals; implementations may block on user input"""

    @abstractmethod
    def confirm(self, prompt_id: str, description: str) -> DecisionResponse:
        ...

    def choose_tolerance(self, prompt_id: str, description: str, default: float) -> Optional[float]:
        """Tolerance to use instead of ``default``, None to skip"""
        return default


class AcceptAllDecisionProvider(DecisionProvider):
    """Accepts every proposal and keeps the suggested tolerance"""

    def confirm(self, prompt_id: str, description: str) -> DecisionResponse:
        return DecisionResponse(Decision.ACCEPT)


class ScriptedDecisionProvider(DecisionProvider):
    """
    Replays a fixed sequence of answers

    Once the script runs out, ``fallback`` is used. Every prompt is
    recorded in ``prompts`` as (prompt_id, description).
    """

    def __init__(
        self,
        decisions: Iterable = (),
        tolerances: Iterable[Optional[float]] = (),
        fallback: Decision = Decision.DECLINE,
    ):
        self._decisions = [d if isinstance(d, DecisionResponse) else DecisionResponse(d) for d in decisions]
        self._tolerances = list(tolerances)
        self.fallback = fallback
        self.prompts: List[Tuple[str, str]] = []
        self.tolerance_prompts: List[Tuple[str, str, float]] = []

    def confirm(self, prompt_id: str, description: str) -> DecisionResponse:
        self.prompts.append((prompt_id, description))
        if self._decisions:
            return self._decisions.pop(0)
        return DecisionResponse(self.fallback)

    def choose_tolerance(self, prompt_id: str, description: str, default: float) -> Optional[float]:
        self.tolerance_prompts.append((prompt_id, description, default))
        if self._tolerances:
            return self._tolerances.pop(0)
        return default if self.fallback is Decision.ACCEPT else None


class ConsoleDecisionProvider(DecisionProvider):
    """Asks on the terminal: y(es) / n(o) / c(ancel), upper case to stop asking"""

    def __init__(self, input_fn: Callable[[str], str] = input):
        self.input_fn = input_fn

    def confirm(self, prompt_id: str, description: str) -> DecisionResponse:
        answers = {
            "y": Decision.ACCEPT,
            "n": Decision.DECLINE,
            "c": Decision.CANCEL_ALL,
        }
        while True:
            raw = self.input_fn(f"{description} [y/n/c, Y/N = don't ask again] ").strip()
            if raw.lower() in answers:
                return DecisionResponse(answers[raw.lower()], suppress=raw.isupper())
            logger.warning(f"Unrecognised answer {raw!r}")

    def choose_tolerance(self, prompt_id: str, description: str, default: float) -> Optional[float]:
        raw = self.input_fn(f"{description} Tolerance in meters [{default}], '-' to skip: ").strip()
        if raw == "-":
            return None
        if not raw:
            return default
        try:
            return float(raw)
        except ValueError:
            logger.warning(f"Not a number: {raw!r}, skipping")
            return None


class DecisionSession:
    """Per-session prompt state on top of a provider"""

    def __init__(self, provider: DecisionProvider):
        self.provider = provider
        self._suppressed: Dict[str, Decision] = {}
        self.cancelled = False

    def is_suppressed(self, prompt_id: str) -> bool:
        return prompt_id in self._suppressed

    def confirm(self, prompt_id: str, description: str) -> Decision:
        if self.cancelled:
            return Decision.CANCEL_ALL
        if prompt_id in self._suppressed:
            return self._suppressed[prompt_id]
        response = self.provider.confirm(prompt_id, description)
        if response.suppress and response.decision is not Decision.CANCEL_ALL:
            self._suppressed[prompt_id] = response.decision
        if response.decision is Decision.CANCEL_ALL:
            self.cancelled = True
            logger.info(f"Cancelled at: {description}")
        return response.decision

    def choose_tolerance(self, prompt_id: str, description: str, default: float) -> Optional[float]:
        if self.cancelled:
            return None
        return self.provider.choose_tolerance(prompt_id, description, default)

    def reset(self):
        self._suppressed.clear()
        self.cancelled = False
