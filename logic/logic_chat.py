import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import gradio as gr

from agents.coach import coach_agent
from .logic_session import Identity, SessionManager

logger = logging.getLogger(__name__)

COACH_ERROR_MSG = "Your coach couldn't answer just now. Your message was kept, please try sending it again."
DEFAULT_PREFS = {"coach_voice": "balanced", "response_length": "medium"}


def welcome_message(identity: Optional[Identity]) -> Dict[str, str]:
    name = identity.display_name if identity and identity.display_name else "there"
    return {
        "role": "assistant",
        "content": (
            f"Hi {name}! I'm your Goal Guru, ready to help you achieve your goals. "
            "How can I assist you today?"
        ),
    }


@dataclass
class Conversation:
    """Transcript of the current chat, in OpenAI-style message dicts."""

    messages: List[Dict[str, str]] = field(default_factory=list)
    processing: bool = False

    @classmethod
    def start(cls, identity: Optional[Identity]) -> "Conversation":
        return cls(messages=[welcome_message(identity)])


async def send_message(
    conversation: Conversation,
    user_input: str,
    identity: Optional[Identity],
    prefs: Optional[Dict[str, Any]] = None,
    agent=coach_agent,
) -> str:
    """
    Add one user message and the coach's reply to `conversation`.

    Returns a status line for the UI ("" when all went well). A failing
    answer producer leaves the transcript as it was and returns an error
    message; the caller can simply retry.
    """
    text = (user_input or "").strip()
    if not text:
        return ""
    if conversation.processing:
        return "Your coach is still answering the previous message."

    prefs = {**DEFAULT_PREFS, **(prefs or {})}
    history = list(conversation.messages)
    conversation.processing = True
    try:
        reply = await asyncio.to_thread(
            agent.reply,
            history,
            text,
            identity.display_name if identity else "",
            prefs["coach_voice"],
            prefs["response_length"],
        )
    except Exception as e:
        # Any backend failure is recoverable from the user's point of view.
        logger.warning("Coach reply failed: %s", e)
        return COACH_ERROR_MSG
    finally:
        conversation.processing = False

    conversation.messages = history + [
        {"role": "user", "content": text},
        {"role": "assistant", "content": reply},
    ]
    return ""


# ================== Gradio callbacks ==================


def start_chat_action(manager: SessionManager, conversation: Optional[Conversation]):
    """Open the chat page: keep an existing transcript, otherwise greet the user."""
    if conversation is None or not conversation.messages:
        conversation = Conversation.start(manager.current)
    return conversation, gr.update(value=conversation.messages), ""


async def chat_send_action(
    manager: SessionManager,
    user_input: str,
    conversation: Optional[Conversation],
    prefs: Optional[Dict[str, Any]],
):
    if manager.current is None:
        return conversation, gr.update(), gr.update(), "Please sign in first."

    if conversation is None:
        conversation = Conversation.start(manager.current)

    status = await send_message(conversation, user_input, manager.current, prefs)
    # Keep the typed text when sending failed, so retrying is one click.
    new_input = gr.update(value=user_input) if status else gr.update(value="")
    return conversation, gr.update(value=conversation.messages), new_input, status
