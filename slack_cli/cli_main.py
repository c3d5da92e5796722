from __future__ import annotations

import argparse
import contextlib
import io
import sys
from typing import Any

import typer
from dotenv import find_dotenv, load_dotenv
from rich.console import Console
from rich.markup import escape

from . import __version__
from .auth_inputs import PromptSecretReader
from .cli_shared import (
    DEFAULT_API_BASE,
    PROG_NAME,
    SLACK_API_BASE,
    SLACK_CLI_QUIET,
    GlobalOpts,
    OpError,
    UsageError,
    _api_base_url,
    _env_or_none,
    _eprint,
    _timeout_from_env,
    _truthy,
)
from .commands import (
    Deps,
    cmd_channels,
    cmd_directmpmsgs,
    cmd_directmsgs,
    cmd_findperson,
    cmd_init,
    cmd_join,
    cmd_msgs,
    cmd_open,
    cmd_send,
    cmd_whoami,
)
from .credential_store import CredentialStore

_ERROR_CONSOLE = Console(stderr=True)

EXAMPLES = (
    "init",
    "whoami",
    "channels --types public_channel,im --limit 20",
    "find-person --query Jane",
    'open --users U123,U456 --text "Hello"',
    "msgs --channel C12345678 --limit 5",
    'send --channel C12345678 --text "Hi"',
    'send --channel C12345678 --text "Reply" --thread-ts 1712345678.000100',
)

COMMAND_ALIASES = {
    "direct-msgs": "directmsgs",
    "direct-mp-msgs": "directmpmsgs",
    "find-person": "findperson",
}


def _rich_error(msg: str) -> None:
    _ERROR_CONSOLE.print(f"[bold red]error:[/bold red] {escape(msg)}")


def _help_text(*, root_app: typer.Typer, prog_name: str, args: list[str]) -> str:
    buf = io.StringIO()
    try:
        with contextlib.redirect_stdout(buf):
            root_app(args=[*args, "--help"], prog_name=prog_name, standalone_mode=False)
    except typer.Exit:
        pass
    except Exception:
        return ""
    return str(buf.getvalue() or "").strip()


def _cli_exit_code(exc: BaseException) -> int | None:
    # typer raises click-style exceptions, which may come from its own bundled click.
    code = getattr(exc, "exit_code", None)
    if isinstance(code, int) and callable(getattr(exc, "format_message", None)):
        return code
    return None


def _render_usage_error_with_help(*, message: str, ctx: typer.Context | None = None) -> None:
    _rich_error(message)
    help_text = ""
    get_help = getattr(ctx, "get_help", None)
    if callable(get_help):
        try:
            help_text = str(get_help() or "").strip()
        except Exception:
            help_text = ""
    if help_text:
        _eprint("")
        _eprint(help_text)


def _namespace(**kwargs: Any) -> argparse.Namespace:
    return argparse.Namespace(**kwargs)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{PROG_NAME} {__version__}")
        raise typer.Exit(code=0)


app = typer.Typer(
    name=PROG_NAME,
    help="A tiny, practical Slack CLI: check who you are, list conversations, read and send messages.",
    no_args_is_help=True,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def app_callback(
    ctx: typer.Context,
    api_base: str | None = typer.Option(
        None,
        "--api-base",
        help=f"Slack Web API base URL (default: {DEFAULT_API_BASE}; env override: {SLACK_API_BASE})",
    ),
    json_output: bool = typer.Option(False, "--json", help="Print raw API responses as JSON"),
    plain_json: bool = typer.Option(False, "--plain-json", help="Emit compact JSON output (implies --json)"),
    quiet: bool = typer.Option(False, "--quiet", help="Reduce stderr logging"),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    del version
    state = ctx.obj if isinstance(ctx.obj, dict) else {}
    try:
        g = GlobalOpts(
            api_base=_api_base_url(api_base or _env_or_none(SLACK_API_BASE) or DEFAULT_API_BASE),
            json_output=bool(json_output or plain_json),
            pretty=not plain_json,
            quiet=bool(quiet or _truthy(_env_or_none(SLACK_CLI_QUIET))),
            timeout_seconds=_timeout_from_env(),
        )
    except UsageError as e:
        _render_usage_error_with_help(message=str(e), ctx=ctx)
        raise typer.Exit(code=2)
    state["g"] = g
    state["deps"] = Deps(
        store=state.get("store") or CredentialStore(),
        reader=state.get("reader") or PromptSecretReader(),
    )
    ctx.obj = state


def _ctx_state(ctx: typer.Context) -> tuple[GlobalOpts, Deps]:
    obj = ctx.obj if isinstance(ctx.obj, dict) else {}
    g = obj.get("g")
    deps = obj.get("deps")
    if not isinstance(g, GlobalOpts) or not isinstance(deps, Deps):
        raise RuntimeError("CLI state not initialised (root callback did not run)")
    return g, deps


def _invoke(ctx: typer.Context, func: Any, **kwargs: Any) -> None:
    g, deps = _ctx_state(ctx)
    args = _namespace(**kwargs)
    try:
        code = int(func(args, g, deps))
    except UsageError as e:
        _render_usage_error_with_help(message=str(e), ctx=ctx)
        raise typer.Exit(code=2)
    except OpError as e:
        _rich_error(str(e))
        raise typer.Exit(code=1)

    if code:
        raise typer.Exit(code=code)


_LIMIT_HELP = "Max number of items (positive; clamped to the API page maximum)"
_CHANNEL_HELP = "Channel or DM id (e.g. C12345678, D23456789)"


@app.command(
    "init",
    help="Initialize and validate a Slack user token (stored in the OS keyring).",
    epilog="Example: slack init --force",
)
def init(
    ctx: typer.Context,
    reset: bool = typer.Option(False, "--reset", help="Clear the stored token (alone: clear and exit)"),
    force: bool = typer.Option(False, "--force", help="Prompt for a new token even if the stored one is valid"),
    token: str | None = typer.Option(None, "--token", help="Provide the token non-interactively (xoxp-...)"),
) -> None:
    _invoke(ctx, cmd_init, reset=reset, force=force, token=token)


@app.command("whoami", help="Show the authenticated identity and team.", epilog="Example: slack whoami")
def whoami(ctx: typer.Context) -> None:
    _invoke(ctx, cmd_whoami)


@app.command(
    "channels",
    help="List conversations visible to you (public_channel, private_channel, mpim, im).",
    epilog="Example: slack channels --types public_channel,im --limit 50",
)
def channels(
    ctx: typer.Context,
    types: str = typer.Option(
        "public_channel,private_channel,mpim,im",
        "--types",
        help="Conversation types (comma-separated)",
    ),
    limit: int = typer.Option(200, "--limit", help=_LIMIT_HELP),
) -> None:
    _invoke(ctx, cmd_channels, types=types, limit=limit)


@app.command(
    "msgs",
    help="Show recent messages for a channel or DM by id.",
    epilog="Example: slack msgs --channel C12345678 --limit 10",
)
def msgs(
    ctx: typer.Context,
    channel: str = typer.Option(..., "--channel", help=_CHANNEL_HELP),
    limit: int = typer.Option(25, "--limit", help=_LIMIT_HELP),
) -> None:
    _invoke(ctx, cmd_msgs, channel=channel, limit=limit)


@app.command(
    "send",
    help="Post a message to a channel or DM by id; use --thread-ts to reply in a thread.",
    epilog='Example: slack send --channel C12345678 --text "Hi from the CLI"',
)
def send(
    ctx: typer.Context,
    channel: str = typer.Option(..., "--channel", help=_CHANNEL_HELP),
    text: str = typer.Option(..., "--text", help="Message text"),
    thread_ts: str | None = typer.Option(None, "--thread-ts", help="Parent message timestamp for a threaded reply"),
) -> None:
    _invoke(ctx, cmd_send, channel=channel, text=text, thread_ts=thread_ts)


@app.command(
    "join",
    help="Join a public channel so you can read and post.",
    epilog="Example: slack join --channel C12345678",
)
def join(
    ctx: typer.Context,
    channel: str = typer.Option(..., "--channel", help="Public channel id (e.g. C01234567)"),
) -> None:
    _invoke(ctx, cmd_join, channel=channel)


_DIRECTMSGS_HELP = "List your direct message (IM) conversations."
_DIRECTMPMSGS_HELP = "List multi-person direct message conversations (MPIMs)."
_FINDPERSON_HELP = "Search for users by display name, real name, email, or user id."


@app.command("directmsgs", help=_DIRECTMSGS_HELP, epilog="Example: slack directmsgs --limit 50")
def directmsgs(
    ctx: typer.Context,
    limit: int = typer.Option(100, "--limit", help=_LIMIT_HELP),
) -> None:
    _invoke(ctx, cmd_directmsgs, limit=limit)


@app.command("directmpmsgs", help=_DIRECTMPMSGS_HELP, epilog="Example: slack directmpmsgs --limit 50")
def directmpmsgs(
    ctx: typer.Context,
    limit: int = typer.Option(100, "--limit", help=_LIMIT_HELP),
) -> None:
    _invoke(ctx, cmd_directmpmsgs, limit=limit)


@app.command("findperson", help=_FINDPERSON_HELP, epilog='Example: slack find-person --query "Jane Doe"')
def findperson(
    ctx: typer.Context,
    query: str = typer.Option(..., "--query", help="Substring to match (case-insensitive)"),
    limit: int = typer.Option(50, "--limit", help="Max matches to show"),
) -> None:
    _invoke(ctx, cmd_findperson, query=query, limit=limit)


@app.command(
    "open",
    help="Open a DM or multi-person DM by user id(s), optionally sending a first message.",
    epilog='Example: slack open --users U12345678,U87654321 --text "Hello!"',
)
def open_conversation(
    ctx: typer.Context,
    users: str = typer.Option(..., "--users", help="Comma-separated user ids (e.g. U123,U456)"),
    text: str | None = typer.Option(None, "--text", help="Message to send in the opened conversation"),
) -> None:
    _invoke(ctx, cmd_open, users=users, text=text)


app.command("direct-msgs", help=_DIRECTMSGS_HELP, hidden=True)(directmsgs)
app.command("direct-mp-msgs", help=_DIRECTMPMSGS_HELP, hidden=True)(directmpmsgs)
app.command("find-person", help=_FINDPERSON_HELP, hidden=True)(findperson)


def _command_names(root_app: typer.Typer) -> list[str]:
    group = typer.main.get_command(root_app)
    commands = getattr(group, "commands", None)
    if not isinstance(commands, dict):
        return []
    return [name for name, cmd in commands.items() if not getattr(cmd, "hidden", False)]


def _should_print_full_help(argv: list[str]) -> bool:
    if not any(a in ("--help", "-h") for a in argv):
        return False
    known = set(_command_names(app)) | set(COMMAND_ALIASES)
    return not any(a in known for a in argv)


def _print_full_help(*, root_app: typer.Typer, prog_name: str) -> None:
    out = sys.stdout
    out.write(f"{prog_name} {__version__}\n\n")
    out.write(_help_text(root_app=root_app, prog_name=prog_name, args=[]) + "\n")
    out.write("\nEXAMPLES:\n")
    for example in EXAMPLES:
        out.write(f"  {prog_name} {example}\n")
    out.write("\nCOMMAND DETAILS:\n")
    for name in _command_names(root_app):
        out.write(f"\n== {name} ==\n")
        aliases = [alias for alias, target in COMMAND_ALIASES.items() if target == name]
        if aliases:
            out.write(f"alias: {', '.join(aliases)}\n")
        out.write(_help_text(root_app=root_app, prog_name=prog_name, args=[name]) + "\n")


def _bootstrap_env() -> None:
    # Exported variables win over .env entries.
    load_dotenv(find_dotenv(usecwd=True))


def _run_cli(*, root_app: typer.Typer, prog_name: str, argv: list[str] | None = None, obj: dict[str, Any] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    _bootstrap_env()
    if _should_print_full_help(argv):
        _print_full_help(root_app=root_app, prog_name=prog_name)
        return 0
    try:
        result = root_app(args=argv, prog_name=prog_name, standalone_mode=False, obj=obj)
        if result is None:
            return 0
        return int(result)
    except typer.Exit as e:
        return int(e.exit_code)
    except typer.Abort:
        _rich_error("aborted")
        return 1
    except UsageError as e:
        _rich_error(str(e))
        return 2
    except OpError as e:
        _rich_error(str(e))
        return 1
    except Exception as e:
        code = _cli_exit_code(e)
        if code is None:
            raise
        if code == 2:
            _render_usage_error_with_help(message=e.format_message(), ctx=getattr(e, "ctx", None))
        else:
            _rich_error(e.format_message())
        return code


def main(argv: list[str] | None = None, *, obj: dict[str, Any] | None = None) -> int:
    return _run_cli(root_app=app, prog_name=PROG_NAME, argv=argv, obj=obj)


if __name__ == "__main__":
    raise SystemExit(main())
