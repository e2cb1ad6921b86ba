"""
jotpad

Tasks, notes and blog drafts with optional account sync and an AI
assistant (local Ollama model, or your own OpenAI / Claude / Gemini key).

Quick Start:
    from jotpad import Workspace
    from jotpad.items import add_task

    ws = Workspace.open()             # uses ~/.jotpad/
    ws.tasks.update(lambda tasks: add_task(tasks, "Buy milk"))
    print(ws.ai.summarize_with_fallback(long_text))

CLI Usage:
    jotpad task add "Buy milk"
    jotpad ai extract-tasks --add < meeting-notes.txt
    jotpad login alice@example.com

Environment Variables:
    JOTPAD_HOME      - Override the app directory
    JOTPAD_API_URL   - Use an account server instead of the local account file
    JOTPAD_API_KEY   - Bearer token for the account server
    OLLAMA_HOST      - Ollama server address
    JOTPAD_VERBOSE   - Set to 1 for debug logging
"""

from .app import Workspace
from .manager import AIFailure, AIManager
from .types import BlogItem, NoteItem, TaskItem, UserAISettings

__all__ = [
    "AIFailure",
    "AIManager",
    "BlogItem",
    "NoteItem",
    "TaskItem",
    "UserAISettings",
    "Workspace",
]
