from __future__ import annotations

import asyncio
from pathlib import Path

import typer

from .audio.engine import SilentSpeechEngine, SpeechEngine, build_speech_engine
from .config.credentials import build_credential_source, save_api_key
from .config.store import SecretStore
from .core.config import Settings, get_settings
from .core.errors import SecretStoreError
from .runtime.controller import ConversationController
from .services.api import CompletionClient
from .services.schemas import Notice, Origin, SubmitStatus


cli = typer.Typer(name="lgchat", help="Gemini chat client")
key_cli = typer.Typer(help="Stored API key")

cli.add_typer(key_cli, name="key")


def _store(settings: Settings) -> SecretStore:
    path = Path(settings.secrets_path).expanduser() if settings.secrets_path else None
    return SecretStore(path)


@cli.command()
def run() -> None:
    """Open the chat window."""
    from .app import run as run_app

    raise typer.Exit(code=run_app(get_settings()))


async def _ask(settings: Settings, text: str, speech: SpeechEngine) -> tuple[SubmitStatus, str | None]:
    controller = ConversationController(
        settings,
        build_credential_source(settings, _store(settings)),
        CompletionClient(settings),
        speech,
        loop=asyncio.get_running_loop(),
    )

    def _print_notice(notice: Notice) -> None:
        typer.echo(notice.text, err=True)

    controller.attach_view(on_notice=_print_notice)
    try:
        status = await controller.submit(text)
        while controller.state.is_speaking:
            await asyncio.sleep(0.1)
        answers = [m for m in controller.state.messages if m.origin is Origin.ASSISTANT]
        return status, answers[-1].text if answers else None
    finally:
        await controller.aclose()


@cli.command()
def ask(
    text: str = typer.Argument(..., help="Question sent to the model"),
    speak: bool = typer.Option(False, "--speak/--no-speak", help="Read the answer aloud"),
) -> None:
    """Send one question and print the answer."""
    settings = get_settings()
    speech = build_speech_engine(settings) if speak else SilentSpeechEngine()
    status, answer = asyncio.run(_ask(settings, text, speech))
    if status is SubmitStatus.COMPLETED and answer is not None:
        typer.echo(answer)
        return
    if status is SubmitStatus.FAILED and answer is not None:
        typer.echo(answer, err=True)
    raise typer.Exit(code=1)


@key_cli.command("set")
def key_set(value: str) -> None:
    settings = get_settings()
    try:
        save_api_key(_store(settings), settings.secret_name, value)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    except SecretStoreError as exc:
        typer.echo(f"Error saving API key: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo("API key saved successfully")


@key_cli.command("show")
def key_show() -> None:
    settings = get_settings()
    value = _store(settings).get(settings.secret_name)
    if not value:
        typer.echo("No API key configured")
        raise typer.Exit(code=1)
    masked = value[:4] + "*" * max(0, len(value) - 4) if len(value) > 4 else "*" * len(value)
    typer.echo(masked)


@key_cli.command("clear")
def key_clear() -> None:
    settings = get_settings()
    removed = _store(settings).delete(settings.secret_name)
    typer.echo("API key removed" if removed else "No API key configured")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
