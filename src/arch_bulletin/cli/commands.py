# src/arch_bulletin/cli/commands.py

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import cast

from ..core.errors import BulletinError
from ..core.state import AppState
from ..notifications.notifier import DocumentNotifier
from ..posts import post_api
from ..posts.post_models import Post

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], Awaitable[str]]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], Awaitable[str]]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the operator console (/help, /posts, ...)."""

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

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        Board and storage errors are turned into a reply instead of propagating.
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
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            if nparams >= 3:
                h3 = cast(CommandHandler3, handler)
                return await h3(state, args, emit)
            h2 = cast(CommandHandler2, handler)
            return await h2(state, args)
        except BulletinError as e:
            logger.debug("/%s failed: %s", name, e, exc_info=True)
            return f"Error [{e.code}]: {e.message}"
        except ValueError as e:
            return f"Error: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _format_post_line(post: Post) -> str:
    assignees = ", ".join(post.assigned_architects) or "-"
    flag = " [archived]" if post.is_archived else ""
    return f"{post.id}  {post.status.short:<9} {post.title}  (assigned: {assignees}){flag}"


def _format_post(post: Post, token: str) -> str:
    lines = [
        f"{post.id}: {post.title}",
        f"  Status: {post.status.short}{' (archived)' if post.is_archived else ''}",
        f"  Assigned: {', '.join(post.assigned_architects) or '-'}"
        f"{' (admin-assigned)' if post.admin_assigned else ''}",
        f"  Created: {post.created_at} by {post.created_by}",
        f"  Updated: {post.updated_at} by {post.updated_by}",
        f"  Proof batches: {len(post.proof_of_work)}  Attachments: {len(post.attachments)}",
        f"  Version: {token[:12]}",
    ]
    if post.description:
        lines.insert(1, f"  {post.description}")
    for c in post.conversations[-5:]:
        lines.append(f"  [{c.timestamp}] {c.author}: {c.message}")
    return "\n".join(lines)


async def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


async def cmd_whoami(state: AppState, args: list[str]) -> str:
    role = await state.board.resolve_role(state.actor.username)
    caps = state.store.capabilities
    return (
        f"Acting as {state.actor.username} (console role: {state.actor.role}, board role: {role.value})\n"
        f"Storage: {state.settings.storage_provider} ({caps.cas.value} CAS; {caps.description})"
    )


async def cmd_posts(state: AppState, args: list[str]) -> str:
    """
    /posts           -> active posts
    /posts archived  -> archived posts
    /posts all       -> everything
    """
    sub = args[0].lower() if args else "active"
    archived: bool | None = {"active": False, "archived": True, "all": None}.get(sub, False)
    posts = await post_api.list_posts(state, archived=archived)
    if not posts:
        return "No posts."
    ceiling = await state.posts.ceiling()
    active = await state.posts.count_active()
    lines = [f"Posts ({sub}); active {active}/{ceiling}:"]
    lines.extend(f"  {_format_post_line(p)}" for p in posts)
    return "\n".join(lines)


async def cmd_post(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /post <id>"
    found = await post_api.get_post(state, args[0])
    return _format_post(found.document, found.version_token)


async def cmd_new(state: AppState, args: list[str]) -> str:
    """/new <title> | <description>"""
    text = " ".join(args)
    if not text.strip():
        return "Usage: /new <title> | <description>"
    title, _, description = text.partition("|")
    found = await post_api.create_post(state, state.actor, title=title, description=description)
    return f"Created {found.document.id}: {found.document.title}"


async def cmd_assign(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /assign <id> [architect]"
    architect = args[1] if len(args) > 1 else state.actor.username
    found = await post_api.assign_architect(state, args[0], architect, state.actor)
    return f"{found.document.id}: assigned {architect} (status {found.document.status.short})"


async def cmd_unassign(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /unassign <id> [architect]"
    architect = args[1] if len(args) > 1 else state.actor.username
    found = await post_api.unassign_architect(state, args[0], architect, state.actor)
    return f"{found.document.id}: unassigned {architect} (status {found.document.status.short})"


async def cmd_proof(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """/proof <id> <file> [notes...]"""
    if len(args) < 2:
        return "Usage: /proof <id> <file> [notes]"
    path = Path(args[1]).expanduser()
    if not path.is_file():
        return f"No such file: {path}"
    if emit:
        emit(f"Uploading {path.name}...")
    found = await post_api.add_proof(
        state, args[0], [(path.name, path.read_bytes())], state.actor, notes=" ".join(args[2:])
    )
    return f"{found.document.id}: proof batch #{len(found.document.proof_of_work)} recorded"


async def cmd_attach(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /attach <id> <file>"
    path = Path(args[1]).expanduser()
    if not path.is_file():
        return f"No such file: {path}"
    if emit:
        emit(f"Uploading {path.name}...")
    found = await post_api.add_attachments(state, args[0], [(path.name, path.read_bytes())], state.actor)
    return f"{found.document.id}: {len(found.document.attachments)} attachment(s)"


async def cmd_submit(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /submit <id>"
    found = await post_api.submit_work(state, args[0], state.actor)
    return f"{found.document.id}: submitted for review"


async def cmd_close(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /close <id>"
    found = await post_api.close_post(state, args[0], state.actor)
    return f"{found.document.id}: closed"


async def cmd_escalate(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /escalate <id>"
    found = await post_api.escalate_post(state, args[0], state.actor)
    return f"{found.document.id}: escalated"


async def cmd_status(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /status <id> <new|assigned|pending|escalate|closed>"
    found = await post_api.change_status(state, args[0], args[1], state.actor)
    return f"{found.document.id}: status {found.document.status.short}"


async def cmd_archive(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /archive <id>"
    found = await post_api.archive_post(state, args[0], state.actor)
    return f"{found.document.id}: archived"


async def cmd_restore(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /restore <id>"
    found = await post_api.restore_post(state, args[0], state.actor)
    return f"{found.document.id}: restored"


async def cmd_comment(state: AppState, args: list[str]) -> str:
    if len(args) < 2:
        return "Usage: /comment <id> <text>"
    found = await post_api.add_comment(state, args[0], " ".join(args[1:]), state.actor)
    return f"{found.document.id}: {len(found.document.conversations)} comment(s)"


async def cmd_architects(state: AppState, args: list[str]) -> str:
    """
    /architects                    -> list
    /architects add <user> [name]  -> add (admin)
    /architects off <user>         -> deactivate (admin)
    /architects on <user>          -> reactivate (admin)
    /architects rm <user>          -> remove when unreferenced (admin)
    """
    if not args:
        architects = await state.board.get_architects()
        if not architects:
            return "No architects configured."
        lines = ["Architects:"]
        for a in architects:
            lines.append(f"  {a.username:<16} {a.display_name} [{a.status.value}]")
        return "\n".join(lines)

    sub = args[0].lower()
    if len(args) < 2:
        return "Usage: /architects [add|off|on|rm] <user>"
    username = args[1]
    if sub == "add":
        a = await state.board.add_architect(state.actor, username=username, display_name=" ".join(args[2:]))
        return f"Added architect {a.username} ({a.id})"
    if sub == "off":
        await state.board.deactivate_architect(state.actor, username)
        return f"Deactivated {username}"
    if sub == "on":
        await state.board.reactivate_architect(state.actor, username)
        return f"Reactivated {username}"
    if sub == "rm":
        await state.board.remove_architect(state.actor, username)
        return f"Removed {username}"
    return "Usage: /architects [add|off|on|rm] <user>"


async def cmd_notifications(state: AppState, args: list[str]) -> str:
    notifier = state.notifier
    if not isinstance(notifier, DocumentNotifier):
        return "Notifications are written to the log only (BULLETIN_NOTIFICATION_SINK=log)."
    if args and args[0].lower() == "read" and len(args) > 1:
        await notifier.mark_read(args[1], state.actor.username)
        return f"Marked {args[1]} as read."
    items = await notifier.list_notifications(unread_only=True)
    if not items:
        return "No unread notifications."
    lines = ["Unread notifications:"]
    for n in items:
        lines.append(f"  {n.id} [{n.type.value}] {n.message}")
    return "\n".join(lines)


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("whoami", cmd_whoami, help_text="Show acting user and storage backend.")
registry.register("posts", cmd_posts, help_text="List posts: /posts [active|archived|all].", aliases=["ls"])
registry.register("post", cmd_post, help_text="Show one post: /post <id>.")
registry.register("new", cmd_new, help_text="Create a post: /new <title> | <description>.")
registry.register("assign", cmd_assign, help_text="Assign an architect: /assign <id> [user].")
registry.register("unassign", cmd_unassign, help_text="Unassign an architect: /unassign <id> [user].")
registry.register("proof", cmd_proof, help_text="Upload proof of work: /proof <id> <file> [notes].")
registry.register("attach", cmd_attach, help_text="Attach a file: /attach <id> <file>.")
registry.register("submit", cmd_submit, help_text="Submit work for review: /submit <id>.")
registry.register("close", cmd_close, help_text="Close a post (admin): /close <id>.")
registry.register("escalate", cmd_escalate, help_text="Escalate a post: /escalate <id>.")
registry.register("status", cmd_status, help_text="Set status (admin): /status <id> <status>.")
registry.register("archive", cmd_archive, help_text="Archive a post: /archive <id>.")
registry.register("restore", cmd_restore, help_text="Restore an archived post: /restore <id>.")
registry.register("comment", cmd_comment, help_text="Comment on a post: /comment <id> <text>.")
registry.register(
    "architects", cmd_architects, help_text="Architects: /architects [add|off|on|rm] <user>."
)
registry.register("notifications", cmd_notifications, help_text="Unread admin notifications.", aliases=["n"])
