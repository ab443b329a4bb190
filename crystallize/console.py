"""Interactive terminal front-end over a Workspace."""

import asyncio
import logging

from crystallize.conversation.models import Turn
from crystallize.errors import ValidationRejection
from crystallize.knowledge.models import Crystal
from crystallize.llm.models import MODEL_MAP, ModelManager, ModelRole, friendly
from crystallize.preferences import View
from crystallize.workspace import Workspace

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  /login NAME        switch to (or create) a local identity
  /logout            forget the active identity (data is kept)
  /chat              show the conversation
  /kb [TERM]         show the knowledge base, optionally filtered
  /crystallize [N]   crystallize answer N (default: the latest answer)
  /delete ID         delete a crystal
  /reset             clear all chat history and saved insights
  /theme             toggle light/dark
  /model [ROLE NAME] view or switch models (ROLE: chat, extraction)
  /status            show session info
  /quit              exit
Anything else is sent as a question."""


def format_turn(position: int, turn: Turn) -> str:
    """Render one turn as plain text."""
    who = "You" if turn.is_user else "Crystallize"
    if turn.pending:
        return f"[{position}] {who}: Analyzing the web..."
    lines = [f"[{position}] {who}: {turn.text}"]
    if turn.citations:
        sources = ", ".join(f"{c.label} <{c.uri}>" for c in turn.citations)
        lines.append(f"    Sources: {sources}")
    return "\n".join(lines)


def format_crystal(crystal: Crystal) -> str:
    """Render one crystal as plain text."""
    lines = [
        f"#{crystal.id} [{crystal.category.upper()}] {crystal.title}",
        f"    {crystal.content}",
    ]
    if crystal.keywords:
        lines.append(f"    Tags: {', '.join(crystal.keywords)}")
    footer = f"    Saved {crystal.created_at:%Y-%m-%d}"
    if crystal.source_url:
        footer += f" · Source: {crystal.source_url}"
    lines.append(footer)
    return "\n".join(lines)


class Console:
    """Maps input lines onto workspace operations and returns text to print."""

    def __init__(self, workspace: Workspace) -> None:
        self.workspace = workspace

    async def handle(self, line: str) -> str:
        line = line.strip()
        if not line:
            return ""
        if not line.startswith("/"):
            return await self._ask(line)

        command, _, arg = line[1:].partition(" ")
        arg = arg.strip()
        handler = getattr(self, f"_cmd_{command.lower()}", None)
        if handler is None:
            return f"Unknown command /{command}. Try /help."
        try:
            return await handler(arg)
        except ValidationRejection as exc:
            return str(exc)

    # -- Chat ------------------------------------------------------------------

    async def _ask(self, text: str) -> str:
        if self.workspace.session is None:
            return "Log in first with /login NAME."
        try:
            turns = self.workspace.session.conversation.turns
            position = len(turns) + 2
            reply = await self.workspace.submit(text)
        except ValidationRejection as exc:
            return str(exc)
        self.workspace.show(View.CHAT)
        return format_turn(position, reply)

    async def _cmd_chat(self, arg: str) -> str:
        session = self.workspace.require_session()
        self.workspace.show(View.CHAT)
        return "\n".join(
            format_turn(i, turn) for i, turn in enumerate(session.conversation.turns, start=1)
        )

    async def _cmd_crystallize(self, arg: str) -> str:
        session = self.workspace.require_session()
        turns = session.conversation.turns
        if arg:
            if not arg.isdigit() or not 1 <= int(arg) <= len(turns):
                return f"No turn numbered {arg}."
            target = turns[int(arg) - 1]
        else:
            answers = [t for t in turns if t.is_assistant and not t.pending]
            if not answers:
                return "Nothing to crystallize yet."
            target = answers[-1]

        outcome = await self.workspace.crystallize(target.id)
        if not outcome.ok:
            return outcome.notice or "Crystallization failed."
        return "Crystallized:\n" + format_crystal(outcome.crystal)

    # -- Knowledge base --------------------------------------------------------

    async def _cmd_kb(self, arg: str) -> str:
        session = self.workspace.require_session()
        self.workspace.show(View.KNOWLEDGE)
        if not len(session.knowledge):
            return (
                "No Crystals Found. Ask questions, then /crystallize an answer "
                "to populate your database."
            )
        found = self.workspace.search(arg)
        header = f"{len(found)} of {len(session.knowledge)} insights"
        return "\n\n".join([header, *(format_crystal(c) for c in found)])

    async def _cmd_delete(self, arg: str) -> str:
        if not arg:
            return "Usage: /delete ID"
        removed = await self.workspace.delete_crystal(arg.lstrip("#"))
        return "Deleted." if removed else f"No crystal {arg}."

    # -- Account ---------------------------------------------------------------

    async def _cmd_login(self, arg: str) -> str:
        await self.workspace.login(arg)
        return await self._cmd_chat("")

    async def _cmd_logout(self, arg: str) -> str:
        await self.workspace.logout()
        return "Logged out."

    async def _cmd_reset(self, arg: str) -> str:
        await self.workspace.reset()
        return "Cleared all chat history and saved insights."

    async def _cmd_theme(self, arg: str) -> str:
        theme = await self.workspace.toggle_theme()
        return f"Theme: {theme.value}"

    async def _cmd_model(self, arg: str) -> str:
        mm = ModelManager.get()
        options = ", ".join(MODEL_MAP)
        if not arg:
            return "\n".join(
                f"{role.capitalize()} model: {friendly(mm.model_for(role))}" for role in ModelRole
            ) + f"\nOptions: {options}"

        # "/model NAME" switches the chat model; "/model ROLE NAME" picks the role.
        first, _, rest = arg.partition(" ")
        if rest and first.lower() in list(ModelRole):
            role, name = ModelRole(first.lower()), rest.strip()
        else:
            role, name = ModelRole.CHAT, arg
        if not mm.switch(role, name):
            return f"Unknown model '{name}'. Valid options: {options}"
        return f"{role.capitalize()} model → {friendly(mm.model_for(role))}"

    async def _cmd_status(self, arg: str) -> str:
        ws = self.workspace
        mm = ModelManager.get()
        lines = [
            f"User: {ws.identity or '(none)'}",
            f"View: {ws.view.value}",
            f"Theme: {ws.theme.value}",
            f"Models: {mm.describe()}",
        ]
        if ws.session is not None:
            lines.append(
                f"Turns: {len(ws.session.conversation)} "
                f"(last {ws.session.conversation.window_size} are saved)"
            )
            lines.append(f"Insights stored: {len(ws.session.knowledge)}")
        return "\n".join(lines)

    async def _cmd_help(self, arg: str) -> str:
        return HELP_TEXT


async def run(workspace: Workspace | None = None) -> None:
    """Read-eval-print loop until /quit or end of input."""
    workspace = workspace or Workspace()
    await workspace.restore()
    console = Console(workspace)

    print("Crystallize AI — your personal knowledge accumulation engine.")
    if workspace.identity:
        print(await console.handle("/chat"))
    else:
        print("What should we call you? Use /login NAME. Type /help for commands.")

    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            break
        if line.strip() in ("/quit", "/exit"):
            break
        output = await console.handle(line)
        if output:
            print(output)

    if workspace.session is not None:
        workspace.session.close()
