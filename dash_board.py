from typing import Any, Dict, List, Optional

# Sample data until goals and tasks are stored per user.
SAMPLE_GOALS: List[Dict[str, Any]] = [
    {
        "id": "1",
        "title": "Improve Fitness",
        "description": "Exercise regularly and maintain a balanced diet",
        "progress": 65,
    },
    {
        "id": "2",
        "title": "Learn Spanish",
        "description": "Practice vocabulary and conversation daily",
        "progress": 30,
    },
    {
        "id": "3",
        "title": "Mindfulness Practice",
        "description": "Daily meditation and reflection",
        "progress": 80,
    },
]

SAMPLE_TASKS: List[Dict[str, Any]] = [
    {"id": "1", "title": "30 minutes cardio workout", "completed": True, "goal_id": "1"},
    {"id": "2", "title": "Practice Spanish vocabulary", "completed": False, "goal_id": "2"},
    {"id": "3", "title": "10 minute meditation", "completed": True, "goal_id": "3"},
    {"id": "4", "title": "Drink 2L of water", "completed": False},
    {"id": "5", "title": "Read for 30 minutes", "completed": False},
]

QUOTE = "The only way to do great work is to love what you do."

DASHBOARD_TXT = """
## Welcome back, {name}

Here's your progress for today.

### 🎯 Your goals

{goals}

### ✅ Today's tasks ({done} of {total} done, {percent}%)

{tasks}

---

> 💡 *{quote}*
"""


def default_tasks() -> List[Dict[str, Any]]:
    return [dict(t) for t in SAMPLE_TASKS]


def completion_percentage(tasks: List[Dict[str, Any]]) -> int:
    if not tasks:
        return 0
    done = sum(1 for t in tasks if t.get("completed"))
    return round(done * 100 / len(tasks))


def toggle_task(tasks: List[Dict[str, Any]], task_id: str):
    """Return (new task list, message). The message is set only when a task gets completed."""
    new_tasks = []
    msg = ""
    for t in tasks:
        t = dict(t)
        if t["id"] == task_id:
            t["completed"] = not t.get("completed")
            if t["completed"]:
                msg = f'Great job completing "{t["title"]}"'
        new_tasks.append(t)
    return new_tasks, msg


def _progress_bar(percent: int, width: int = 20) -> str:
    filled = round(width * percent / 100)
    return "█" * filled + "░" * (width - filled)


def render_dashboard(name: Optional[str], tasks: List[Dict[str, Any]]) -> str:
    goals = "\n".join(
        f"- **{g['title']}**: {g['description']}  \n  `{_progress_bar(g['progress'])}` {g['progress']}%"
        for g in SAMPLE_GOALS
    )
    task_lines = "\n".join(
        f"- {'☑' if t.get('completed') else '☐'} {t['title']}" for t in tasks
    )
    done = sum(1 for t in tasks if t.get("completed"))
    return DASHBOARD_TXT.format(
        name=name or "there",
        goals=goals,
        done=done,
        total=len(tasks),
        percent=completion_percentage(tasks),
        tasks=task_lines or "_No tasks for today._",
        quote=QUOTE,
    )
