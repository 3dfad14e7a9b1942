import argparse
import logging
import sys

import gradio as gr

import app_config
from dash_board import default_tasks, render_dashboard, toggle_task
from errors import SessionError, ValidationError
from storage import JsonFileStore, ensure_base_dir, get_client_dir, is_client_id, new_client_id
from logic.logic_chat import DEFAULT_PREFS, chat_send_action, start_chat_action
from logic.logic_onboarding import (
    COACH_PERSONALITIES,
    DEFAULT_PERSONALITY,
    GOAL_CATEGORIES,
    LAST_STEP,
    OnboardingWizard,
)
from logic.logic_routes import (
    CHAT_PATH,
    HOME_PATH,
    ONBOARDING_PATH,
    SETTINGS_PATH,
    SIGNIN_PATH,
    SIGNUP_PATH,
    Area,
    LOADING,
    NOT_FOUND,
    resolve_route,
)
from logic.logic_session import LocalAuthBackend, Session, SessionManager
from logic.logic_user import (
    NOTIFICATION_DEFAULTS,
    back_to_login_panel,
    load_profile_action,
    login_action,
    logout_action,
    register_action,
    save_coach_prefs_action,
    save_notification_prefs_action,
    save_profile_action,
    show_register_panel,
)

_parser = argparse.ArgumentParser(add_help=False)
_parser.add_argument("--data-dir", type=str, default=None)
_args, _unknown = _parser.parse_known_args(sys.argv[1:])
if _args.data_dir is not None:
    app_config.DATA_DIR = _args.data_dir

logger = logging.getLogger(__name__)

MAIN_PAGES = (HOME_PATH, CHAT_PATH, SETTINGS_PATH)
CLIENT_ID_STORAGE_KEY = "goal_guru_client_id"


def open_client_session(client_id, data_dir: str | None = None):
    """Returns (client id, manager). Unknown or missing ids get a fresh client."""
    if not is_client_id(client_id):
        client_id = new_client_id()
        logger.info("New browser client %s", client_id)
    return client_id, create_manager(client_id, data_dir)


def create_manager(client_id: str, data_dir: str | None = None) -> SessionManager:
    """Session manager for one browser, over that browser's own store file."""
    base_dir = data_dir or app_config.DATA_DIR
    ensure_base_dir(base_dir)
    client_dir = get_client_dir(base_dir, client_id)
    return SessionManager(
        JsonFileStore(app_config.store_path(client_dir)),
        backend=LocalAuthBackend(latency=app_config.AUTH_LATENCY),
        timeout=app_config.AUTH_TIMEOUT,
        policy=app_config.SESSION_CONFLICT_POLICY,
    )


def build_demo() -> gr.Blocks:
    with gr.Blocks(title="Goal Guru") as demo:
        # Kept in the browser's localStorage, so a reload finds the same store.
        client_id_state = gr.BrowserState("", storage_key=CLIENT_ID_STORAGE_KEY)

        # Per-browser states
        manager_state = gr.State(None)
        path_state = gr.State(HOME_PATH)
        wizard_state = gr.State(None)
        tasks_state = gr.State(default_tasks())
        conversation_state = gr.State(None)
        prefs_state = gr.State({**DEFAULT_PREFS, **NOTIFICATION_DEFAULTS})

        # ========== Loading ==========
        with gr.Column(visible=True) as loading_panel:
            gr.Markdown("## ⏳ Loading...")

        # ========== Sign in ==========
        with gr.Column(visible=False) as signin_panel:
            gr.Markdown("## 🎯 Goal Guru\nSign in to continue your coaching journey.")
            signin_email = gr.Textbox(label="Email")
            signin_password = gr.Textbox(label="Password", type="password")
            signin_button = gr.Button("Sign in", variant="primary")
            go_signup_button = gr.Button("Create an account")
            signin_status = gr.Markdown("")

        # ========== Sign up ==========
        with gr.Column(visible=False) as signup_panel:
            gr.Markdown("## 🎯 Create your account")
            signup_name = gr.Textbox(label="Name")
            signup_email = gr.Textbox(label="Email")
            signup_password = gr.Textbox(label="Password", type="password")
            signup_password2 = gr.Textbox(label="Confirm password", type="password")
            signup_button = gr.Button("Sign up", variant="primary")
            back_signin_button = gr.Button("Back to sign in")
            signup_status = gr.Markdown("")

        # ========== Onboarding ==========
        with gr.Column(visible=False) as onboarding_panel:
            onb_header = gr.Markdown("")
            with gr.Column(visible=True) as onb_step_goals:
                onb_categories = gr.CheckboxGroup(
                    label="Select one or more areas you want to focus on with your coach",
                    choices=[(label, cid) for cid, label in GOAL_CATEGORIES.items()],
                )
            with gr.Column(visible=False) as onb_step_coach:
                onb_personality = gr.Radio(
                    label="Coach personality",
                    choices=[
                        (f"{p['label']}: {p['description']}", pid)
                        for pid, p in COACH_PERSONALITIES.items()
                    ],
                    value=DEFAULT_PERSONALITY,
                )
            with gr.Column(visible=False) as onb_step_habits:
                onb_morning = gr.Textbox(
                    label="Morning Routine",
                    placeholder="Describe your typical morning routine...",
                    lines=3,
                )
                onb_evening = gr.Textbox(
                    label="Evening Routine",
                    placeholder="Describe your typical evening routine...",
                    lines=3,
                )
                onb_challenges = gr.Textbox(
                    label="Current Challenges",
                    placeholder="What challenges are you facing in achieving your goals?",
                    lines=3,
                )
            with gr.Column(visible=False) as onb_step_confirm:
                onb_confirm = gr.Markdown("")
            with gr.Row():
                onb_back = gr.Button("Back", visible=False)
                onb_next = gr.Button("Continue", variant="primary")
                onb_finish = gr.Button("Get Started", variant="primary", visible=False)
            onb_status = gr.Markdown("")
            onb_logout = gr.Button("Log out", variant="secondary")

        # ========== Main area ==========
        with gr.Row(visible=False) as main_panel:
            with gr.Column(scale=1, min_width=180):
                gr.Markdown("### Goal Guru")
                btn_dashboard = gr.Button("📊 Dashboard")
                btn_chat = gr.Button("💬 Coach chat")
                btn_settings = gr.Button("⚙️ Settings")
                gr.Markdown("---")
                logout_btn = gr.Button("Log out", variant="secondary")
                main_status = gr.Markdown("")

            with gr.Column(scale=4):
                with gr.Column(visible=True) as page_dashboard:
                    dashboard_md = gr.Markdown("")
                    task_checks = gr.CheckboxGroup(
                        label="Mark today's tasks",
                        choices=[(t["title"], t["id"]) for t in default_tasks()],
                    )

                with gr.Column(visible=False) as page_chat:
                    gr.Markdown("## 💬 Coach Chat")
                    chatbot = gr.Chatbot(label="Goal Guru", type="messages")
                    chat_input = gr.Textbox(label="Your message", lines=2)
                    chat_send_btn = gr.Button("Send", variant="primary")
                    chat_status = gr.Markdown("")

                with gr.Column(visible=False) as page_settings:
                    gr.Markdown("## ⚙️ Settings")
                    gr.Markdown("### Profile")
                    profile_name = gr.Textbox(label="Name")
                    profile_email = gr.Textbox(label="Email", interactive=False)
                    profile_save_btn = gr.Button("Save changes")
                    profile_status = gr.Markdown("")
                    gr.Markdown("### Notifications")
                    notify_daily = gr.Checkbox(
                        label="Daily Reminders: a morning check-in and evening reflection reminder",
                        value=NOTIFICATION_DEFAULTS["daily_reminders"],
                    )
                    notify_weekly = gr.Checkbox(
                        label="Weekly Progress Recap: a summary of your weekly progress every Sunday",
                        value=NOTIFICATION_DEFAULTS["weekly_recap"],
                    )
                    notify_achievements = gr.Checkbox(
                        label="Achievement Alerts: when you reach a milestone or complete a goal",
                        value=NOTIFICATION_DEFAULTS["achievement_alerts"],
                    )
                    notify_save_btn = gr.Button("Save preferences")
                    notify_status = gr.Markdown("")
                    gr.Markdown("### Coach")
                    coach_voice = gr.Radio(
                        label="Coach voice",
                        choices=[(p["label"], pid) for pid, p in COACH_PERSONALITIES.items()],
                        value=DEFAULT_PREFS["coach_voice"],
                    )
                    response_length = gr.Radio(
                        label="Response length",
                        choices=[("Short", "short"), ("Medium", "medium"), ("Long", "long")],
                        value=DEFAULT_PREFS["response_length"],
                    )
                    coach_save_btn = gr.Button("Save coach settings")
                    coach_status = gr.Markdown("")

        # ========== Not found ==========
        with gr.Column(visible=False) as notfound_panel:
            gr.Markdown("## 404\nOops! Page not found")
            notfound_home_btn = gr.Button("Return to Home")

        route_outputs = [
            path_state,
            loading_panel,
            signin_panel,
            signup_panel,
            onboarding_panel,
            main_panel,
            notfound_panel,
            page_dashboard,
            page_chat,
            page_settings,
        ]
        onboarding_view_outputs = [
            onb_header,
            onb_step_goals,
            onb_step_coach,
            onb_step_habits,
            onb_step_confirm,
            onb_back,
            onb_next,
            onb_finish,
            onb_confirm,
        ]
        page_outputs = [
            dashboard_md,
            task_checks,
            wizard_state,
            onb_categories,
            onb_personality,
            onb_morning,
            onb_evening,
            onb_challenges,
            onb_status,
            conversation_state,
            chatbot,
            chat_status,
            profile_name,
            profile_email,
            profile_status,
            *onboarding_view_outputs,
        ]

        # ---------- routing ----------

        def navigate(path, manager):
            session = manager.snapshot() if manager else Session()
            decision = resolve_route(path, session)
            page = decision.path
            show_main = decision.kind not in (LOADING, NOT_FOUND) and page in MAIN_PAGES

            if decision.area in (Area.ONBOARDING, Area.AUTHENTICATED) and decision.allowed:
                try:
                    if manager.acknowledge_welcome():
                        gr.Info("Welcome back! Ready to make progress on your goals today?")
                except SessionError as e:
                    logger.warning("Could not record welcome marker: %s", e.message)

            return (
                page,
                gr.update(visible=decision.kind == LOADING),
                gr.update(visible=decision.allowed and page == SIGNIN_PATH),
                gr.update(visible=decision.allowed and page == SIGNUP_PATH),
                gr.update(visible=decision.allowed and page == ONBOARDING_PATH),
                gr.update(visible=show_main),
                gr.update(visible=decision.kind == NOT_FOUND),
                gr.update(visible=page == HOME_PATH),
                gr.update(visible=page == CHAT_PATH),
                gr.update(visible=page == SETTINGS_PATH),
            )

        def onboarding_view(wizard: OnboardingWizard):
            step = wizard.current_step
            summary = wizard.answers.confirmation()
            confirm_lines = [
                "We've set up your personal coach based on your preferences.",
                "",
                f"- **Focus areas:** {', '.join(summary['categories']) or '-'}",
                f"- **Coach:** {summary['coach_personality']}",
            ]
            return {
                onb_header: (
                    f"**{wizard.progress_label()}**\n\n"
                    f"## {wizard.step['title']}\n{wizard.step['description']}"
                ),
                onb_step_goals: gr.update(visible=step == 0),
                onb_step_coach: gr.update(visible=step == 1),
                onb_step_habits: gr.update(visible=step == 2),
                onb_step_confirm: gr.update(visible=step == LAST_STEP),
                onb_back: gr.update(visible=step > 0),
                onb_next: gr.update(visible=step < LAST_STEP),
                onb_finish: gr.update(visible=step == LAST_STEP),
                onb_confirm: "\n".join(confirm_lines),
            }

        def refresh_page(path, wizard, tasks, conversation, manager):
            if manager is None:
                return {}
            identity = manager.current
            updates = {}
            if path == ONBOARDING_PATH:
                if wizard is None:
                    wizard = OnboardingWizard()
                    updates.update(
                        {
                            onb_categories: [],
                            onb_personality: DEFAULT_PERSONALITY,
                            onb_morning: "",
                            onb_evening: "",
                            onb_challenges: "",
                            onb_status: "",
                        }
                    )
                updates[wizard_state] = wizard
                updates.update(onboarding_view(wizard))
            elif path == HOME_PATH and identity is not None:
                updates[dashboard_md] = render_dashboard(identity.display_name, tasks)
                updates[task_checks] = [t["id"] for t in tasks if t.get("completed")]
            elif path == CHAT_PATH:
                conversation, chat_value, status = start_chat_action(manager, conversation)
                updates.update(
                    {conversation_state: conversation, chatbot: chat_value, chat_status: status}
                )
            elif path == SETTINGS_PATH:
                name, email, status = load_profile_action(manager)
                updates.update({profile_name: name, profile_email: email, profile_status: status})
            return updates

        def go(event):
            """Re-evaluate the route for path_state, then refresh the visible page."""
            return event.then(navigate, inputs=[path_state, manager_state], outputs=route_outputs).then(
                refresh_page,
                inputs=[path_state, wizard_state, tasks_state, conversation_state, manager_state],
                outputs=page_outputs,
            )

        async def on_load(client_id, request: gr.Request):
            client_id, manager = open_client_session(client_id)
            await manager.initialize()
            page = request.query_params.get("page") if request else None
            return client_id, manager, page or HOME_PATH

        go(
            demo.load(
                on_load,
                inputs=[client_id_state],
                outputs=[client_id_state, manager_state, path_state],
            )
        )

        # ---------- sign in / sign up / sign out ----------

        async def do_logout(manager, path):
            status, new_path, conversation = await logout_action(manager, path)
            wizard = None if new_path == SIGNIN_PATH else gr.update()
            return status, new_path, conversation, wizard

        go(
            signin_button.click(
                login_action,
                inputs=[manager_state, signin_email, signin_password, path_state],
                outputs=[signin_status, path_state],
            )
        )
        go(
            signup_button.click(
                register_action,
                inputs=[manager_state, signup_name, signup_email, signup_password, signup_password2, path_state],
                outputs=[signup_status, path_state],
            )
        )
        go(go_signup_button.click(show_register_panel, inputs=None, outputs=[path_state]))
        go(back_signin_button.click(back_to_login_panel, inputs=None, outputs=[path_state]))
        for button, status_box in ((logout_btn, main_status), (onb_logout, onb_status)):
            go(
                button.click(
                    do_logout,
                    inputs=[manager_state, path_state],
                    outputs=[status_box, path_state, conversation_state, wizard_state],
                )
            )

        # ---------- navigation ----------

        go(btn_dashboard.click(lambda: HOME_PATH, inputs=None, outputs=[path_state]))
        go(btn_chat.click(lambda: CHAT_PATH, inputs=None, outputs=[path_state]))
        go(btn_settings.click(lambda: SETTINGS_PATH, inputs=None, outputs=[path_state]))
        go(notfound_home_btn.click(lambda: HOME_PATH, inputs=None, outputs=[path_state]))

        # ---------- onboarding ----------

        onboarding_inputs = [
            wizard_state,
            onb_categories,
            onb_personality,
            onb_morning,
            onb_evening,
            onb_challenges,
        ]

        def _sync_answers(wizard, categories, personality, morning, evening, challenges):
            wizard = wizard or OnboardingWizard()
            wizard.select_categories(categories)
            wizard.select_personality(personality or DEFAULT_PERSONALITY)
            wizard.set_routine(morning=morning, evening=evening, challenges=challenges)
            return wizard

        def onboarding_next(wizard, categories, personality, morning, evening, challenges):
            try:
                wizard = _sync_answers(wizard, categories, personality, morning, evening, challenges)
                wizard.advance()
            except ValidationError as e:
                return {wizard_state: wizard, onb_status: e.message}
            return {wizard_state: wizard, onb_status: "", **onboarding_view(wizard)}

        def onboarding_back(wizard):
            wizard = wizard or OnboardingWizard()
            wizard.retreat()
            return {wizard_state: wizard, onb_status: "", **onboarding_view(wizard)}

        async def onboarding_finish(manager, wizard, path):
            if wizard is None:
                return {onb_status: "Please start onboarding again.", path_state: path}
            try:
                await wizard.complete(manager)
            except SessionError as e:
                return {wizard_state: wizard, onb_status: e.message, path_state: path}
            gr.Info("Onboarding completed! Your personal coach is ready to help you achieve your goals.")
            return {wizard_state: None, onb_status: "", path_state: HOME_PATH}

        onb_next.click(
            onboarding_next,
            inputs=onboarding_inputs,
            outputs=[wizard_state, onb_status, *onboarding_view_outputs],
        )
        onb_back.click(
            onboarding_back,
            inputs=[wizard_state],
            outputs=[wizard_state, onb_status, *onboarding_view_outputs],
        )
        go(
            onb_finish.click(
                onboarding_finish,
                inputs=[manager_state, wizard_state, path_state],
                outputs=[wizard_state, onb_status, path_state],
            )
        )

        # ---------- dashboard ----------

        def on_tasks_changed(manager, selected, tasks):
            selected = set(selected or [])
            for t in list(tasks):
                if bool(t.get("completed")) != (t["id"] in selected):
                    tasks, msg = toggle_task(tasks, t["id"])
                    if msg:
                        gr.Info(msg)
            identity = manager.current if manager else None
            name = identity.display_name if identity else None
            return tasks, render_dashboard(name, tasks)

        task_checks.input(
            on_tasks_changed,
            inputs=[manager_state, task_checks, tasks_state],
            outputs=[tasks_state, dashboard_md],
        )

        # ---------- chat ----------

        chat_outputs = [conversation_state, chatbot, chat_input, chat_status]
        chat_send_btn.click(
            chat_send_action,
            inputs=[manager_state, chat_input, conversation_state, prefs_state],
            outputs=chat_outputs,
            concurrency_limit=1,
        )
        chat_input.submit(
            chat_send_action,
            inputs=[manager_state, chat_input, conversation_state, prefs_state],
            outputs=chat_outputs,
            concurrency_limit=1,
        )

        # ---------- settings ----------

        profile_save_btn.click(
            save_profile_action,
            inputs=[manager_state, profile_name],
            outputs=[profile_name, profile_status],
        )
        notify_save_btn.click(
            save_notification_prefs_action,
            inputs=[prefs_state, notify_daily, notify_weekly, notify_achievements],
            outputs=[prefs_state, notify_status],
        )
        coach_save_btn.click(
            save_coach_prefs_action,
            inputs=[prefs_state, coach_voice, response_length],
            outputs=[prefs_state, coach_status],
        )

    return demo


if __name__ == "__main__":
    app_config.setup_logging()
    demo = build_demo()
    demo.launch()
