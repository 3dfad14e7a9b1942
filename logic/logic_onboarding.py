"""
Onboarding questionnaire: four fixed steps, walked forward and back.

Answers live only in the wizard. The one durable effect is flipping the
user's onboarding_complete flag through SessionManager.mutate().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from errors import SessionError, ValidationError
from .logic_session import Identity, SessionManager

logger = logging.getLogger(__name__)

STEPS: List[Dict[str, str]] = [
    {
        "id": "goals",
        "title": "What are your goals?",
        "description": "Select the areas you want to focus on",
    },
    {
        "id": "coach",
        "title": "Customize your coach",
        "description": "How would you like your AI coach to interact with you?",
    },
    {
        "id": "habits",
        "title": "Daily Habits",
        "description": "Tell us about your current routine",
    },
    {
        "id": "confirmation",
        "title": "You're all set!",
        "description": "Let's start your coaching journey",
    },
]
LAST_STEP = len(STEPS) - 1

GOAL_CATEGORIES: Dict[str, str] = {
    "fitness": "Fitness & Health",
    "mindfulness": "Mindfulness & Mental Health",
    "career": "Career & Skills",
    "learning": "Learning & Education",
    "relationships": "Relationships",
    "productivity": "Productivity & Time Management",
}

COACH_PERSONALITIES: Dict[str, Dict[str, str]] = {
    "supportive": {
        "label": "Supportive & Encouraging",
        "description": "Focuses on positive reinforcement and celebrating your wins",
    },
    "challenging": {
        "label": "Challenging & Direct",
        "description": "Pushes you out of your comfort zone and holds you accountable",
    },
    "analytical": {
        "label": "Analytical & Strategic",
        "description": "Takes a data-driven approach to help you optimize your habits",
    },
    "balanced": {
        "label": "Balanced & Adaptable",
        "description": "Adjusts coaching style based on your needs and situation",
    },
}
DEFAULT_PERSONALITY = "balanced"

ROUTINE_FIELDS = ("morning_routine", "evening_routine", "challenges")


@dataclass
class OnboardingAnswers:
    categories: Set[str] = field(default_factory=set)
    coach_personality: str = DEFAULT_PERSONALITY
    morning_routine: str = ""
    evening_routine: str = ""
    challenges: str = ""

    def confirmation(self) -> Dict[str, object]:
        """Read-only summary shown on the last step."""
        return {
            "categories": sorted(GOAL_CATEGORIES[c] for c in self.categories),
            "coach_personality": COACH_PERSONALITIES[self.coach_personality]["label"],
            "routine": {
                name: getattr(self, name).strip()
                for name in ROUTINE_FIELDS
                if getattr(self, name).strip()
            },
        }


class OnboardingWizard:
    def __init__(self):
        self.current_step = 0
        self.answers = OnboardingAnswers()
        self.finished = False

    # ---------- answers ----------

    def toggle_category(self, category_id: str) -> Set[str]:
        if category_id not in GOAL_CATEGORIES:
            raise ValidationError(f"Unknown goal category: {category_id}")
        self.answers.categories ^= {category_id}
        return set(self.answers.categories)

    def select_categories(self, category_ids) -> None:
        chosen = set(category_ids or [])
        unknown = chosen - set(GOAL_CATEGORIES)
        if unknown:
            raise ValidationError(f"Unknown goal category: {', '.join(sorted(unknown))}")
        self.answers.categories = chosen

    def select_personality(self, personality_id: str) -> None:
        if personality_id not in COACH_PERSONALITIES:
            raise ValidationError(f"Unknown coach personality: {personality_id}")
        self.answers.coach_personality = personality_id

    def set_routine(
        self,
        morning: Optional[str] = None,
        evening: Optional[str] = None,
        challenges: Optional[str] = None,
    ) -> None:
        if morning is not None:
            self.answers.morning_routine = morning
        if evening is not None:
            self.answers.evening_routine = evening
        if challenges is not None:
            self.answers.challenges = challenges

    # ---------- navigation ----------

    def is_step_valid(self, step: int) -> bool:
        if step == 0:
            return bool(self.answers.categories)
        if step == 1:
            return self.answers.coach_personality in COACH_PERSONALITIES
        if step == 2:
            return any(getattr(self.answers, name).strip() for name in ROUTINE_FIELDS)
        return step == LAST_STEP

    def advance(self) -> int:
        if self.current_step == LAST_STEP:
            return self.current_step
        if not self.is_step_valid(self.current_step):
            raise ValidationError(
                "Cannot continue: " + _STEP_HINTS.get(self.current_step, "this step is incomplete.")
            )
        self.current_step += 1
        return self.current_step

    def retreat(self) -> int:
        if self.current_step > 0:
            self.current_step -= 1
        return self.current_step

    def progress_label(self) -> str:
        return f"{self.current_step + 1} of {len(STEPS)}"

    @property
    def step(self) -> Dict[str, str]:
        return STEPS[self.current_step]

    # ---------- completion ----------

    async def complete(self, manager: SessionManager) -> Identity:
        """
        Mark onboarding as done for the signed-in user.

        On failure the wizard stays on the last step with its answers intact,
        so the caller can show the error and retry.
        """
        if self.finished:
            raise ValidationError("Onboarding is already complete.")
        if self.current_step != LAST_STEP:
            raise ValidationError("Finish every step before completing onboarding.")
        try:
            identity = await manager.mutate(onboarding_complete=True)
        except SessionError as e:
            logger.warning("Onboarding completion failed: %s", e.message)
            raise
        self.answers = OnboardingAnswers()
        self.finished = True
        return identity


_STEP_HINTS = {
    0: "select at least one goal area.",
    2: "describe your morning or evening routine, or a current challenge.",
}
