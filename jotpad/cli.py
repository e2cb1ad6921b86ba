"""
CLI for jotpad.

Usage:
    jotpad task add "Buy milk"
    jotpad note add "Ideas" --content "<p>...</p>"
    jotpad ai summarize < draft.txt
    jotpad login alice@example.com
"""

import json
import sys
from contextlib import contextmanager
from dataclasses import asdict, replace
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import typer
from typing_extensions import Annotated

from .app import Workspace
from .config import get_home, load_or_create_config
from .items import (
    TASK_FILTERS,
    add_task,
    add_tasks,
    count_active,
    delete_item,
    edit_task,
    filter_tasks,
    find_item,
    new_document,
    toggle_task,
    update_document,
    word_count,
)
from .logging_config import configure_quiet_mode, enable_debug_mode, verbose_requested
from .manager import AIFailure
from .providers.llm import OllamaProvider
from .providers.ollama_utils import ollama_has_model
from .types import PROVIDER_IDS, BlogItem, NoteItem, UserAISettings, normalize_provider_id

# Characters of an id shown in listings (prefixes are accepted as ids)
SHORT_ID_LEN = 8


# Configure quiet mode by default (suppress verbose library output)
# Set JOTPAD_VERBOSE=1 to enable debug mode via environment
if verbose_requested():
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"jotpad {version('jotpad')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_home_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _home_callback(value: Optional[Path]):
    global _home_override
    _home_override = value


app = typer.Typer(
    name="jotpad",
    help="Tasks, notes and blog drafts with an AI assistant.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    home: Annotated[Optional[Path], typer.Option(
        "--home",
        envvar="JOTPAD_HOME",
        help="App directory (default: ~/.jotpad/)",
        callback=_home_callback,
        is_eager=True,
    )] = None,
):
    """Tasks, notes and blog drafts with an AI assistant."""


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

@contextmanager
def _workspace() -> Iterator[Workspace]:
    """Open the workspace, printing AI fallbacks to stderr."""
    config = load_or_create_config(_home_override or get_home())
    ws = Workspace.open(config)
    ws.ai.add_failure_listener(_report_fallback)
    try:
        yield ws
    finally:
        ws.close()


def _report_fallback(failure: AIFailure) -> None:
    typer.echo(
        f"AI {failure.operation} unavailable ({failure.provider}): {failure.error}. "
        "Showing the original text.",
        err=True,
    )


def _echo_json(value) -> None:
    typer.echo(json.dumps(value, indent=2, ensure_ascii=False))


def _short(item_id: str) -> str:
    return item_id[:SHORT_ID_LEN]


def _format_millis(millis: int) -> str:
    return datetime.fromtimestamp(millis / 1000).strftime("%Y-%m-%d %H:%M")


def _resolve(items: list, item_id: str):
    try:
        return find_item(items, item_id)
    except KeyError as e:
        typer.echo(f"Error: {e.args[0]}", err=True)
        raise typer.Exit(1)


def _read_text(text: Optional[str]) -> str:
    """Text argument, or stdin when omitted or '-'."""
    if text is not None and text != "-":
        return text
    if sys.stdin.isatty():
        typer.echo("Error: provide text as an argument or on stdin", err=True)
        raise typer.Exit(1)
    return sys.stdin.read()


def _require_user(ws: Workspace) -> str:
    if ws.user_id is None:
        typer.echo("Error: not signed in (use 'jotpad login USER')", err=True)
        raise typer.Exit(1)
    return ws.user_id


# -----------------------------------------------------------------------------
# Session
# -----------------------------------------------------------------------------

@app.command()
def status():
    """Show who is signed in, the active AI provider, and item counts."""
    with _workspace() as ws:
        tasks = ws.tasks.read()
        info = {
            "user": ws.user_id,
            "storage": "account" if ws.user_id else "local",
            "ai_provider": ws.ai.active_provider_name,
            "ai_available": ws.ai.is_available(),
            "tasks": len(tasks),
            "active_tasks": count_active(tasks),
            "notes": len(ws.notes.read()),
            "blogs": len(ws.blogs.read()),
        }
        provider = ws.ai.provider
        if info["ai_available"] and isinstance(provider, OllamaProvider):
            info["ai_model"] = provider.model
            info["ai_model_installed"] = ollama_has_model(provider.base_url, provider.model)
    if _json_output:
        _echo_json(info)
        return
    typer.echo(f"user: {info['user'] or '(anonymous)'}")
    typer.echo(f"storage: {info['storage']}")
    availability = "available" if info["ai_available"] else "unavailable"
    typer.echo(f"ai: {info['ai_provider']} ({availability})")
    if info.get("ai_model_installed") is False:
        typer.echo(f"  model {info['ai_model']} not installed (run: ollama pull {info['ai_model']})")
    typer.echo(f"tasks: {info['tasks']} ({info['active_tasks']} active)")
    typer.echo(f"notes: {info['notes']}")
    typer.echo(f"blogs: {info['blogs']}")


@app.command()
def login(
    user: Annotated[str, typer.Argument(help="Account user id")],
):
    """Sign in; local items are moved into the account."""
    with _workspace() as ws:
        if ws.user_id == user:
            typer.echo(f"Already signed in as {user}")
            return
        if ws.user_id is not None:
            ws.sign_out()
        ws.sign_in(user)
        results = ws.migration.last_results
        provider = ws.ai.active_provider_name
    if _json_output:
        _echo_json({"user": user, "migrated": results, "ai_provider": provider})
        return
    typer.echo(f"Signed in as {user}")
    for kind, ok in results.items():
        typer.echo(f"  {kind}: {'migrated' if ok else 'migration failed, kept locally'}")


@app.command()
def logout():
    """Sign out; items are read from local storage again."""
    with _workspace() as ws:
        user = ws.user_id
        ws.sign_out()
    typer.echo(f"Signed out {user}" if user else "Not signed in")


@app.command()
def migrate():
    """Retry moving local items into the signed-in account."""
    with _workspace() as ws:
        _require_user(ws)
        results = ws.migration.run()
    if _json_output:
        _echo_json(results)
        return
    if not results:
        typer.echo("Nothing to migrate")
    for kind, ok in results.items():
        typer.echo(f"{kind}: {'migrated' if ok else 'failed'}")
    if not all(results.values()):
        raise typer.Exit(1)


# -----------------------------------------------------------------------------
# Tasks
# -----------------------------------------------------------------------------

task_app = typer.Typer(name="task", help="Manage tasks.", rich_markup_mode=None)
app.add_typer(task_app)


def _print_tasks(tasks: list) -> None:
    if _json_output:
        _echo_json([t.model_dump(by_alias=True) for t in tasks])
        return
    for t in tasks:
        mark = "x" if t.completed else " "
        typer.echo(f"[{mark}] {_short(t.id)}  {t.title}")


@task_app.command("add")
def task_add(
    titles: Annotated[list[str], typer.Argument(help="Task title(s)")],
):
    """Add one or more tasks."""
    with _workspace() as ws:
        if len(titles) == 1:
            tasks = ws.tasks.update(lambda items: add_task(items, titles[0]))
        else:
            tasks = ws.tasks.update(lambda items: add_tasks(items, titles))
    added = len([t for t in titles if t.strip()])
    if _json_output:
        _print_tasks(tasks[:added])
    else:
        typer.echo(f"Added {added} task(s)")


@task_app.command("list")
def task_list(
    filter_mode: Annotated[Optional[str], typer.Option(
        "--filter", "-f",
        help=f"One of: {', '.join(TASK_FILTERS)} (remembered)",
    )] = None,
):
    """List tasks, newest first."""
    with _workspace() as ws:
        if filter_mode is not None:
            if filter_mode not in TASK_FILTERS:
                typer.echo(f"Error: unknown filter '{filter_mode}'", err=True)
                raise typer.Exit(1)
            ws.set_task_filter(filter_mode)
        mode = ws.get_task_filter()
        tasks = ws.tasks.read()
    shown = filter_tasks(tasks, mode)
    _print_tasks(shown)
    if not _json_output:
        typer.echo(f"{count_active(tasks)} active, {len(tasks)} total ({mode})", err=True)


@task_app.command("done")
def task_done(
    task_id: Annotated[str, typer.Argument(help="Task id (or unique prefix)")],
):
    """Toggle a task's completed state."""
    with _workspace() as ws:
        task = _resolve(ws.tasks.read(), task_id)
        ws.tasks.update(lambda items: toggle_task(items, task.id))
    state = "open" if task.completed else "done"
    typer.echo(f"{_short(task.id)} {state}: {task.title}")


@task_app.command("edit")
def task_edit(
    task_id: Annotated[str, typer.Argument(help="Task id (or unique prefix)")],
    title: Annotated[str, typer.Argument(help="New title")],
):
    """Rename a task."""
    if not title.strip():
        typer.echo("Error: title cannot be blank", err=True)
        raise typer.Exit(1)
    with _workspace() as ws:
        task = _resolve(ws.tasks.read(), task_id)
        ws.tasks.update(lambda items: edit_task(items, task.id, title))
    typer.echo(f"{_short(task.id)}: {title.strip()}")


@task_app.command("rm")
def task_rm(
    task_id: Annotated[str, typer.Argument(help="Task id (or unique prefix)")],
):
    """Delete a task."""
    with _workspace() as ws:
        task = _resolve(ws.tasks.read(), task_id)
        ws.tasks.update(lambda items: delete_item(items, task.id))
    typer.echo(f"Deleted {_short(task.id)}: {task.title}")


# -----------------------------------------------------------------------------
# Notes and blog posts
# -----------------------------------------------------------------------------

def _document_commands(kind: str, model: type[NoteItem], noun: str) -> typer.Typer:
    """Build the add/list/show/rm sub-app for a document collection."""
    sub = typer.Typer(name=noun, help=f"Manage {kind}.", rich_markup_mode=None)

    @sub.command("add")
    def add(
        title: Annotated[str, typer.Argument(help="Title")] = "",
        content: Annotated[Optional[str], typer.Option(
            "--content", "-c", help="HTML content ('-' to read stdin)",
        )] = None,
    ):
        """Create a document."""
        content_html = _read_text(content) if content is not None else ""
        doc = new_document(model, title, content_html)
        with _workspace() as ws:
            ws.collection(kind).update(lambda items: [doc] + items)
        if _json_output:
            _echo_json(doc.model_dump(by_alias=True))
        else:
            typer.echo(f"{_short(doc.id)}  {doc.title}")

    @sub.command("list")
    def list_():
        """List documents, most recently updated first."""
        with _workspace() as ws:
            docs = ws.collection(kind).read()
        if _json_output:
            _echo_json([d.model_dump(by_alias=True) for d in docs])
            return
        for d in docs:
            typer.echo(f"{_short(d.id)}  {_format_millis(d.updated_at)}  {d.title}")

    @sub.command("show")
    def show(
        item_id: Annotated[str, typer.Argument(help="Id (or unique prefix)")],
    ):
        """Print a document's content."""
        with _workspace() as ws:
            doc = _resolve(ws.collection(kind).read(), item_id)
        if _json_output:
            _echo_json(doc.model_dump(by_alias=True))
            return
        typer.echo(f"# {doc.title}  ({word_count(doc.content_html)} words)")
        typer.echo(doc.content_html)

    @sub.command("rm")
    def rm(
        item_id: Annotated[str, typer.Argument(help="Id (or unique prefix)")],
    ):
        """Delete a document."""
        with _workspace() as ws:
            store = ws.collection(kind)
            doc = _resolve(store.read(), item_id)
            store.update(lambda items: delete_item(items, doc.id))
        typer.echo(f"Deleted {_short(doc.id)}: {doc.title}")

    return sub


app.add_typer(_document_commands("notes", NoteItem, "note"))
app.add_typer(_document_commands("blogs", BlogItem, "blog"))


# -----------------------------------------------------------------------------
# AI assistant
# -----------------------------------------------------------------------------

ai_app = typer.Typer(name="ai", help="AI assistant operations.", rich_markup_mode=None)
app.add_typer(ai_app)

TextArgument = Annotated[
    Optional[str],
    typer.Argument(help="Input text (default: read stdin)"),
]

SaveOption = Annotated[
    Optional[str],
    typer.Option(
        "--save", help="Write the result into this note or blog post id",
    ),
]


def _save_into_document(ws: Workspace, item_id: str, content: str) -> None:
    for kind in ("notes", "blogs"):
        store = ws.collection(kind)
        try:
            doc = find_item(store.read(), item_id)
        except KeyError:
            continue
        store.update(lambda items: update_document(items, doc.id, content_html=content))
        typer.echo(f"Saved to {kind[:-1]} {_short(doc.id)}", err=True)
        return
    typer.echo(f"Error: no note or blog post with id: {item_id}", err=True)
    raise typer.Exit(1)


def _content_command(operation: str, text: Optional[str], save: Optional[str]) -> None:
    source = _read_text(text)
    with _workspace() as ws:
        result = getattr(ws.ai, f"{operation}_with_fallback")(source)
        if save and result != source:
            _save_into_document(ws, save, result)
    typer.echo(result)


@ai_app.command("summarize")
def ai_summarize(text: TextArgument = None, save: SaveOption = None):
    """Condense text, keeping its key points."""
    _content_command("summarize", text, save)


@ai_app.command("rewrite")
def ai_rewrite(text: TextArgument = None, save: SaveOption = None):
    """Improve grammar, clarity and structure."""
    _content_command("rewrite_and_format", text, save)


@ai_app.command("blog")
def ai_blog(text: TextArgument = None, save: SaveOption = None):
    """Restructure text as an HTML blog post."""
    _content_command("format_as_blog_post", text, save)


@ai_app.command("extract-tasks")
def ai_extract_tasks(
    text: TextArgument = None,
    add: Annotated[bool, typer.Option("--add", help="Add the tasks to the task list")] = False,
):
    """List the actionable tasks in text."""
    source = _read_text(text)
    with _workspace() as ws:
        tasks = ws.ai.extract_tasks_with_fallback(source)
        if add and tasks:
            ws.tasks.update(lambda items: add_tasks(items, tasks))
    if _json_output:
        _echo_json(tasks)
    else:
        for t in tasks:
            typer.echo(f"- {t}")
        if add:
            typer.echo(f"Added {len(tasks)} task(s)", err=True)


@ai_app.command("speech")
def ai_speech(
    text: TextArgument = None,
    add: Annotated[bool, typer.Option("--add", help="Add the task to the task list")] = False,
):
    """Turn a spoken transcript into one task."""
    source = _read_text(text).strip()
    with _workspace() as ws:
        task = ws.ai.speech_to_task_with_fallback(source)
        if add:
            ws.tasks.update(lambda items: add_task(items, task))
    typer.echo(task)


# -----------------------------------------------------------------------------
# Settings
# -----------------------------------------------------------------------------

settings_app = typer.Typer(name="settings", help="Account AI settings.", rich_markup_mode=None)
app.add_typer(settings_app)


def _print_settings(settings: UserAISettings) -> None:
    masked = settings.masked()
    if _json_output:
        _echo_json(masked.to_dict())
        return
    for key, value in asdict(masked).items():
        typer.echo(f"{key}: {value if value is not None else '-'}")


@settings_app.command("show")
def settings_show():
    """Show the signed-in user's AI settings (keys masked)."""
    with _workspace() as ws:
        user = _require_user(ws)
        settings = ws.remote.fetch_settings(user)
    _print_settings(settings)


@settings_app.command("set")
def settings_set(
    provider: Annotated[Optional[str], typer.Option(
        "--provider", "-p", help=f"Preferred AI: {', '.join(PROVIDER_IDS)}",
    )] = None,
    openai_key: Annotated[Optional[str], typer.Option(
        "--openai-key", envvar="JOTPAD_OPENAI_KEY", help="OpenAI API key ('' to clear)",
    )] = None,
    claude_key: Annotated[Optional[str], typer.Option(
        "--claude-key", envvar="JOTPAD_CLAUDE_KEY", help="Anthropic API key ('' to clear)",
    )] = None,
    gemini_key: Annotated[Optional[str], typer.Option(
        "--gemini-key", envvar="JOTPAD_GEMINI_KEY", help="Gemini API key ('' to clear)",
    )] = None,
):
    """Update the signed-in user's AI settings."""
    if provider is not None and provider not in PROVIDER_IDS + ("local",):
        typer.echo(f"Error: unknown provider '{provider}'", err=True)
        raise typer.Exit(1)
    changes = {
        name: value
        for name, value in (
            ("preferred_ai", normalize_provider_id(provider) if provider else None),
            ("openai_key", openai_key),
            ("claude_key", claude_key),
            ("gemini_key", gemini_key),
        )
        if value is not None
    }
    with _workspace() as ws:
        user = _require_user(ws)
        current = ws.remote.fetch_settings(user)
        stored = ws.save_ai_settings(replace(current, **changes))
    _print_settings(stored)


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="jotpad CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
