"""CLI entry point for toolbot."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import typer

from toolbot.config import ToolbotConfig
from toolbot.errors import MaxRoundsExceeded, ToolbotError, TransportError

from toolbot.agent.loop import ChatAgent
from toolbot.llm.provider import ModelTransport
from toolbot.tool.builtin.calendar import CalendarTool
from toolbot.tool.registry import ToolRegistry

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="toolbot",
    help="A conversational assistant that can run code, fetch pages and check your calendar.",
    no_args_is_help=True,
)

HELP_TEXT = (
    "Available commands:\n"
    "/help - Show this help message\n"
    "/tools - List the tools the assistant can use\n"
    "/auth - Connect Google Calendar\n"
    "/authcode <code> - Complete Google auth\n"
    "/quit - Leave\n\n"
    "Or just ask things like:\n"
    '- "What\'s on my calendar today?"\n'
    '- "Write a Python script to calculate pi"\n'
    '- "Summarize https://example.com"'
)


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # litellm is chatty at INFO
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


@dataclass
class ChatPipeline:
    """Everything a message handler needs. Shared by all commands."""

    config: ToolbotConfig
    provider: ModelTransport
    tool_registry: ToolRegistry
    agent: ChatAgent

    @property
    def calendar(self) -> CalendarTool | None:
        tool = self.tool_registry.get(CalendarTool.name)
        return tool if isinstance(tool, CalendarTool) else None


def build_pipeline(config: ToolbotConfig, show_tools: bool = True) -> ChatPipeline:
    """Set up the provider, the registry and the agent."""
    from toolbot.bootstrap import build_provider, build_registry

    provider = build_provider(config)
    tool_registry = build_registry(config, provider)

    def _on_tool_call(tc_id: str, name: str, arguments: str) -> None:
        preview = arguments if len(arguments) <= 120 else arguments[:117] + "..."
        typer.echo(f"  [tool] {name}({preview})", err=True)

    def _on_tool_result(tc_id: str, name: str, content: str, is_error: bool) -> None:
        status = "error" if is_error else "ok"
        typer.echo(f"  [tool] {name} -> {status} ({len(content)} chars)", err=True)

    agent = ChatAgent(
        provider=provider,
        tool_registry=tool_registry,
        max_rounds=config.agent.max_rounds,
        on_tool_call=_on_tool_call if show_tools else None,
        on_tool_result=_on_tool_result if show_tools else None,
    )
    return ChatPipeline(
        config=config, provider=provider, tool_registry=tool_registry, agent=agent
    )


def error_reply(error: Exception) -> str:
    """What the user sees when a chat fails."""
    if isinstance(error, MaxRoundsExceeded):
        return (
            "Sorry, I couldn't finish that: it took more than "
            f"{error.max_rounds} tool rounds. Try breaking it into smaller steps."
        )
    if isinstance(error, TransportError):
        return "Sorry, I couldn't process that. Make sure the model backend is running."
    return f"Sorry, something went wrong: {error}"


async def respond(pipeline: ChatPipeline, text: str) -> str:
    """Handle one inbound message: a slash command or a chat request."""
    text = text.strip()
    if not text.startswith("/"):
        try:
            return await pipeline.agent.chat(text)
        except ToolbotError as e:
            logger.error("Agent error: %s", e)
            return error_reply(e)

    command, _, argument = text[1:].partition(" ")
    command = command.lower()

    if command in ("help", "start"):
        return HELP_TEXT

    if command == "tools":
        return _describe_tools(pipeline.tool_registry)

    if command == "auth":
        calendar = pipeline.calendar
        if calendar is None:
            return "Calendar tool is not registered."
        try:
            auth_url = await calendar.init()
        except ToolbotError as e:
            return f"Warning: {e}"
        if not auth_url:
            return "Google Calendar is already connected!"
        return (
            "To connect Google Calendar:\n\n"
            f"1. Open this link:\n{auth_url}\n\n"
            "2. Sign in and authorize access\n\n"
            "3. Copy the code you receive\n\n"
            "4. Send: /authcode YOUR_CODE"
        )

    if command == "authcode":
        code = argument.strip()
        if not code:
            return "Please provide the authorization code: /authcode YOUR_CODE"
        calendar = pipeline.calendar
        if calendar is None:
            return "Calendar tool is not registered."
        try:
            await calendar.complete_auth(code)
        except ToolbotError as e:
            return f"Authentication failed: {e}"
        return "Google Calendar connected! Try asking \"What's on my calendar?\""

    return "Unknown command. Try /help"


def _describe_tools(registry: ToolRegistry) -> str:
    lines = []
    for tool in sorted(registry.all(), key=lambda t: t.name):
        summary = tool.description.strip().split("\n", 1)[0]
        lines.append(f"- {tool.name}: {summary}")
    return "\n".join(lines) if lines else "No tools registered."


def _load_config(config_file: str | None, model: str | None) -> ToolbotConfig:
    config = ToolbotConfig.load(config_file)
    if model:
        config.llm.model = model
    return config


async def _connect_calendar(pipeline: ChatPipeline) -> None:
    calendar = pipeline.calendar
    if calendar is None:
        return
    try:
        auth_url = await calendar.init()
    except ToolbotError as e:
        logger.info("Calendar init warning: %s", e)
        return
    if auth_url:
        logger.info("Calendar needs authentication. Use /auth in the repl.")
    else:
        logger.info("Calendar authenticated successfully")


@app.command()
def ask(
    utterance: str = typer.Argument(help="What to ask the assistant."),
    model: str | None = typer.Option(
        None, "--model", "-m", help="Model to use (default: from env/config)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Answer a single question and exit."""
    setup_logging(verbose)
    config = _load_config(config_file, model)
    pipeline = build_pipeline(config)

    async def _run() -> str:
        await _connect_calendar(pipeline)
        return await pipeline.agent.chat(utterance)

    try:
        answer = asyncio.run(_run())
    except ToolbotError as e:
        logger.error("Agent error: %s", e)
        typer.echo(error_reply(e), err=True)
        raise typer.Exit(1)

    typer.echo(answer)


@app.command()
def repl(
    model: str | None = typer.Option(
        None, "--model", "-m", help="Model to use (default: from env/config)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Interactive session. Every message is answered independently."""
    setup_logging(verbose)
    config = _load_config(config_file, model)
    pipeline = build_pipeline(config)

    typer.echo(f"toolbot (model: {config.llm.model})")
    typer.echo(f"Tools: {', '.join(pipeline.tool_registry.names())}")
    typer.echo("Type /help for commands, /quit to leave.")
    typer.echo("---")

    try:
        asyncio.run(_repl(pipeline))
    except KeyboardInterrupt:
        typer.echo("\nShutting down...")


async def _repl(pipeline: ChatPipeline) -> None:
    await _connect_calendar(pipeline)
    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except EOFError:
            return
        if not line.strip():
            continue
        if line.strip().lower() in ("/quit", "/exit"):
            return
        typer.echo(await respond(pipeline, line))


@app.command()
def tools(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """List the registered tools."""
    config = _load_config(config_file, None)
    pipeline = build_pipeline(config, show_tools=False)
    typer.echo(_describe_tools(pipeline.tool_registry))


@app.command()
def auth(
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Start the Google Calendar authorization flow."""
    pipeline = build_pipeline(_load_config(config_file, None), show_tools=False)
    typer.echo(asyncio.run(respond(pipeline, "/auth")))


@app.command()
def authcode(
    code: str = typer.Argument(help="Authorization code from the consent page."),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Finish the Google Calendar authorization flow."""
    pipeline = build_pipeline(_load_config(config_file, None), show_tools=False)
    typer.echo(asyncio.run(respond(pipeline, f"/authcode {code}")))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
