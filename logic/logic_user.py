import gradio as gr

from errors import SessionError
from .logic_routes import HOME_PATH, SIGNIN_PATH, SIGNUP_PATH
from .logic_session import SessionManager


# ================== Auth: sign in / sign up / sign out ==================


async def login_action(manager: SessionManager, email, password, current_path):
    """Returns (status message, path to navigate to)."""
    try:
        identity = await manager.establish(email, password)
    except SessionError as e:
        return e.message, current_path

    gr.Info(f"Welcome back, {identity.display_name}!")
    return "", HOME_PATH


async def register_action(manager: SessionManager, name, email, password, password2, current_path):
    if password != password2:
        return "Passwords do not match.", current_path

    try:
        identity = await manager.register(email, password, name)
    except SessionError as e:
        return e.message, current_path

    gr.Info(f"Account created. Welcome, {identity.display_name}!")
    return "", HOME_PATH


async def logout_action(manager: SessionManager, current_path):
    """Returns (status message, path, cleared conversation)."""
    try:
        await manager.terminate()
    except SessionError as e:
        gr.Warning("Failed to sign out. " + e.message)
        return e.message, current_path, gr.update()

    gr.Info("Signed out successfully")
    return "", SIGNIN_PATH, None


def show_register_panel():
    return SIGNUP_PATH


def back_to_login_panel():
    return SIGNIN_PATH


# ================== Profile (settings page) ==================


def load_profile_action(manager: SessionManager):
    identity = manager.current
    if identity is None:
        return "", "", "Please sign in first."
    return identity.display_name, identity.email, ""


async def save_profile_action(manager: SessionManager, name):
    try:
        identity = await manager.mutate(display_name=name)
    except SessionError as e:
        return gr.update(), e.message

    gr.Info("Profile updated successfully")
    return identity.display_name, ""


NOTIFICATION_DEFAULTS = {
    "daily_reminders": True,
    "weekly_recap": True,
    "achievement_alerts": True,
}


def save_notification_prefs_action(prefs, daily_reminders, weekly_recap, achievement_alerts):
    new_prefs = dict(prefs or {})
    new_prefs["daily_reminders"] = bool(daily_reminders)
    new_prefs["weekly_recap"] = bool(weekly_recap)
    new_prefs["achievement_alerts"] = bool(achievement_alerts)
    gr.Info("Notification settings saved")
    return new_prefs, "Notification settings saved for this session."


def save_coach_prefs_action(prefs, coach_voice, response_length):
    new_prefs = dict(prefs or {})
    new_prefs["coach_voice"] = coach_voice or "balanced"
    new_prefs["response_length"] = response_length or "medium"
    return new_prefs, "Coach settings saved for this session."
