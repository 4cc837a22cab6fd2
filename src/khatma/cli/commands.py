# src/khatma/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..core.errors import InvalidArgument, KhatmaError
from ..core.models import Project, ProjectView, UnitChange
from .bootstrap import AppState

CommandHandler = Callable[[AppState, list[str]], str]

EXIT_COMMANDS = ("exit", "quit")

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Slash-command registry used by the console (/help, /claim, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Domain errors are rendered as the reply; anything else propagates.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, args)
        except KhatmaError as e:
            logger.debug("/%s rejected: %s: %s", name, type(e).__name__, e)
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("  /exit - Quit the console (alias /quit).")
        return "\n".join(lines)


registry = CommandRegistry()


def _int_arg(args: list[str], pos: int, what: str) -> int:
    try:
        return int(args[pos])
    except (IndexError, ValueError):
        raise InvalidArgument(f"Expected a numeric {what}.") from None


def _caller(state: AppState) -> int:
    return state.service.resolve_caller(state.session)


def _project_line(p: Project) -> str:
    status = "complete" if p.is_complete else "in progress"
    return f"  #{p.id} {p.name} (code {p.invitation_code}, {status})"


def _change_line(verb: str, change: UnitChange) -> str:
    line = f"Juz' {change.unit.number} of '{change.project.name}' {verb}."
    if change.project.is_complete:
        line += " Khatima complete!"
    return line


def format_project_view(view: ProjectView, viewer_id: int | None = None) -> str:
    p = view.project
    lines = [
        f"Khatima #{p.id}: {p.name}",
        f"  Invitation code: {p.invitation_code}",
        f"  Participants: {view.participant_count}",
        f"  Progress: {view.done_count}/{len(view.units)}"
        + ("  [COMPLETE]" if p.is_complete else ""),
    ]
    if viewer_id is not None and viewer_id == p.admin_id:
        lines.append("  You are the admin.")
    for uv in view.units:
        u = uv.unit
        if u.is_done:
            status = "done"
        elif u.claimed_by is not None:
            status = "claimed"
        else:
            status = "open"
        who = ""
        if u.claimed_by is not None:
            who = f" by {uv.claimed_by_username or f'user#{u.claimed_by}'}"
        lines.append(f"  Juz' {u.number:>2} [unit {u.id}] {status}{who}")
    return "\n".join(lines)


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_register(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /register NAME"
    user = state.service.register_user(" ".join(args))
    return f"Registered user '{user.username}'. Use /login {user.username}."


def cmd_login(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /login NAME"
    user = state.service.find_user(" ".join(args))
    state.session.login(user.id, user.username)
    logger.debug("Session login user=%s", user.id)
    return f"Logged in as {user.username}."


def cmd_logout(state: AppState, args: list[str]) -> str:
    if state.session.user_id is None:
        return "Not logged in."
    state.session.logout()
    return "Logged out."


def cmd_whoami(state: AppState, args: list[str]) -> str:
    if state.session.user_id is None:
        return "Not logged in."
    return f"{state.session.username} (user #{state.session.user_id})"


def cmd_create(state: AppState, args: list[str]) -> str:
    project = state.service.create_project(_caller(state), " ".join(args))
    return (
        f"Created Khatima #{project.id} '{project.name}'.\n"
        f"  Share the invitation code: {project.invitation_code}"
    )


def cmd_join(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /join CODE"
    project = state.service.join_project(_caller(state), args[0])
    return f"Joined Khatima #{project.id} '{project.name}'."


def cmd_dash(state: AppState, args: list[str]) -> str:
    dash = state.service.dashboard(_caller(state))
    lines = [f"Dashboard for {dash.username}"]
    for title, projects in (
        ("Your Khatmas", dash.owned),
        ("Joined", dash.joined),
        ("Completed", dash.finished),
    ):
        lines.append(f"{title}:")
        lines.extend(_project_line(p) for p in projects)
        if not projects:
            lines.append("  (none)")
    return "\n".join(lines)


def cmd_show(state: AppState, args: list[str]) -> str:
    caller = _caller(state)
    view = state.service.project_view(_int_arg(args, 0, "project id"), caller)
    return format_project_view(view, viewer_id=caller)


def cmd_claim(state: AppState, args: list[str]) -> str:
    change = state.service.claim(_int_arg(args, 0, "unit id"), _caller(state))
    return _change_line("claimed", change)


def cmd_unclaim(state: AppState, args: list[str]) -> str:
    change = state.service.unclaim(_int_arg(args, 0, "unit id"), _caller(state))
    return _change_line("released", change)


def cmd_done(state: AppState, args: list[str]) -> str:
    change = state.service.mark_done(_int_arg(args, 0, "unit id"), _caller(state))
    return _change_line("marked done", change)


def cmd_override(state: AppState, args: list[str]) -> str:
    """
    /override UNIT unclaim    -> clear the claimant
    /override UNIT mark_done  -> mark done (may complete the Khatima)
    /override UNIT reset      -> back to open, un-completes the Khatima
    """
    if len(args) < 2:
        return "Usage: /override UNIT_ID unclaim|mark_done|reset"
    unit_id = _int_arg(args, 0, "unit id")
    change = state.service.admin_override(unit_id, _caller(state), args[1])
    return _change_line(f"updated ({args[1].strip().lower()})", change)


def cmd_rename(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /rename PROJECT_ID NEW NAME"
    project = state.service.rename_project(_int_arg(args, 0, "project id"), _caller(state), " ".join(args[1:]))
    return f"Khatima #{project.id} is now '{project.name}'."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("register", cmd_register, help_text="Create a user: /register NAME.")
registry.register("login", cmd_login, help_text="Act as a user: /login NAME.")
registry.register("logout", cmd_logout, help_text="Forget the current user.")
registry.register("whoami", cmd_whoami, help_text="Show the current user.")
registry.register("create", cmd_create, help_text="Create a Khatima: /create NAME.")
registry.register("join", cmd_join, help_text="Join with an invitation code: /join CODE.")
registry.register("dash", cmd_dash, help_text="List your Khatmas.", aliases=["dashboard"])
registry.register("show", cmd_show, help_text="Show a Khatima and its juz': /show PROJECT_ID.")
registry.register("claim", cmd_claim, help_text="Claim an open juz': /claim UNIT_ID.")
registry.register("unclaim", cmd_unclaim, help_text="Release your juz': /unclaim UNIT_ID.")
registry.register("done", cmd_done, help_text="Mark a juz' done: /done UNIT_ID.")
registry.register(
    "override",
    cmd_override,
    help_text="Admin: /override UNIT_ID unclaim | mark_done | reset.",
)
registry.register("rename", cmd_rename, help_text="Admin: /rename PROJECT_ID NEW NAME.")
