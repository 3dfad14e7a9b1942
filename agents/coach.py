import random
from typing import Dict, List, Optional

from agents.base import OpenAIStyleClient
from agents.prompt_coach import CANNED_REPLIES, build_system_prompt
from app_config import COACH_MODEL_NAME, LLM_BASE_URL, UI_TEST_MODE

# How many previous messages are sent along with the new one.
MAX_HISTORY_MESSAGES = 12


class CoachAgent:
    """
    Answer producer for the coach chat.

    Takes the transcript so far plus the newest user message and returns one
    reply. Errors from the backend are raised to the caller unchanged.
    """

    def __init__(self, client: Optional[OpenAIStyleClient] = None, test_mode: bool = UI_TEST_MODE):
        self.client = client or OpenAIStyleClient(LLM_BASE_URL, COACH_MODEL_NAME)
        self.test_mode = test_mode

    def build_messages(
        self,
        history: List[Dict[str, str]],
        user_input: str,
        user_name: str = "",
        style: str = "balanced",
        length: str = "medium",
    ) -> List[Dict[str, str]]:
        system_prompt = build_system_prompt(style, length)
        if user_name:
            system_prompt += f"\n<USER_CONTEXT>\nname: {user_name}\n</USER_CONTEXT>\n"

        messages: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
        for item in history[-MAX_HISTORY_MESSAGES:]:
            if item.get("role") in ("user", "assistant") and item.get("content"):
                messages.append({"role": item["role"], "content": item["content"]})
        messages.append({"role": "user", "content": user_input})
        return messages

    def reply(
        self,
        history: List[Dict[str, str]],
        user_input: str,
        user_name: str = "",
        style: str = "balanced",
        length: str = "medium",
    ) -> str:
        if self.test_mode:
            return random.choice(CANNED_REPLIES)

        messages = self.build_messages(history, user_input, user_name, style, length)
        max_tokens = {"short": 96, "medium": 256, "long": 512}.get(length, 256)
        return self.client.chat(messages, max_tokens=max_tokens).strip()


coach_agent = CoachAgent()
