"""
Nality - CLI Entry Point.

Usage:
    nality serve             Start the API server
    nality onboard           Walk through the onboarding flow in the terminal
    nality show-draft        Print the stored onboarding draft
    nality clear-draft       Delete the stored onboarding draft
    nality health            Check configuration
    nality --help            Show help
"""

import json
import logging
import sys

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

app = typer.Typer(
    name="nality",
    help="Nality - your life stories, onboarding and API server.",
    add_completion=False,
)
console = Console()


NEUTRAL_BLOCK_TITLE = "Erst erzählen, dann registrieren"
NEUTRAL_BLOCK_TEXT = (
    "Du kannst direkt mit deiner ersten Erzählung starten und danach in weniger als einer "
    "Minute deine Registrierung abschließen. Deine bisherigen Antworten bleiben erhalten."
)


class QuitOnboarding(Exception):
    """User asked to leave the interactive flow; the draft is already saved."""


class GoBack(Exception):
    """User asked to return to the previous screen."""


def setup_logging(level: str) -> None:
    """Configure the root logger from settings."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    # Quiet down noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _draft_store():
    from nality.config import settings
    from onboarding.draft_storage import DraftStore, JsonFileStorage

    return DraftStore(JsonFileStorage(settings.draft_storage_path))


# =============================================================================
# Interactive prompts
# =============================================================================


def _ask(prompt: str) -> str:
    answer = console.input(f"[bold blue]{prompt}[/bold blue] ").strip()
    if answer.lower() in ("q", "quit", "exit"):
        raise QuitOnboarding()
    if answer.lower() in ("b", "back"):
        raise GoBack()
    return answer


def _print_options(options) -> None:
    for number, option in enumerate(options, start=1):
        console.print(f"  [cyan]{number}[/cyan]) {option.label}")
        if option.description:
            console.print(f"     [dim]{option.description}[/dim]")
        if option.cta_label and option.cta_url:
            console.print(f"     [dim]{option.cta_label}: {option.cta_url}[/dim]")


def _pick_one(options, prompt: str = "Auswahl:") -> str:
    _print_options(options)
    while True:
        answer = _ask(prompt)
        if answer.isdigit() and 1 <= int(answer) <= len(options):
            return options[int(answer) - 1].id
        console.print(f"[yellow]Bitte eine Zahl von 1 bis {len(options)} eingeben.[/yellow]")


def _pick_many(options) -> list[str]:
    from onboarding.machine import toggle_multi_value

    _print_options(options)
    while True:
        answer = _ask("Auswahl (mehrere mit Komma trennen):")
        picked: list[str] = []
        valid = True
        for part in (p.strip() for p in answer.split(",") if p.strip()):
            if not part.isdigit() or not 1 <= int(part) <= len(options):
                valid = False
                break
            option_id = options[int(part) - 1].id
            if option_id not in picked:
                picked = toggle_multi_value(picked, option_id)
        if valid and picked:
            return picked
        console.print("[yellow]Bitte mindestens eine gültige Zahl eingeben.[/yellow]")


def _ask_step(step) -> dict:
    """Collect the answers for one step."""
    from onboarding.steps import StepKind

    if step.kind == StepKind.INFO:
        _ask("Weiter mit Enter")
        return {}
    if step.kind == StepKind.MULTI:
        return {step.id: _pick_many(step.options)}
    if step.kind == StepKind.DEMOGRAPHICS:
        answers = {}
        for demographic in step.fields:
            console.print(f"\n{demographic.label}")
            answers[demographic.id] = _pick_one(demographic.options)
        return answers
    return {step.id: _pick_one(step.options)}


def _ask_registration(draft) -> dict:
    from onboarding.registration import RegistrationDraft

    previous = draft.registration or {}
    while True:
        first_name = _ask("Vorname oder Spitzname:") or previous.get("firstNameOrNickname", "")
        last_name = _ask("Nachname (optional):") or previous.get("lastName", "")
        email = _ask("E-Mail:") or previous.get("email", "")
        try:
            registration = RegistrationDraft(
                first_name_or_nickname=first_name,
                last_name=last_name,
                email=email,
                method="password",
            )
        except ValidationError as e:
            for error in e.errors():
                console.print(f"[red]{error['msg']}[/red]")
            continue
        return registration.to_wire()


def _submit_pending(draft):
    """Store the draft as a pending registration. Returns the updated draft."""
    from nality.db.client import get_service_client
    from onboarding.pending import PendingStorageError, create_pending_registration
    from onboarding.registration import PendingRegistrationPayload

    payload = PendingRegistrationPayload.model_validate({
        "registration": draft.registration,
        "addressPreference": draft.address_preference,
        "entry": draft.entry.to_dict() if draft.entry else None,
        "path": draft.path.value if draft.path else None,
        "responses": draft.responses,
        "neutralBlockVisited": draft.neutral_block_visited,
    })

    try:
        link = create_pending_registration(get_service_client(), payload)
    except PendingStorageError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"\n[green]Onboarding-Link gespeichert[/green] (gültig bis {link.to_dict()['expiresAt']})")
    console.print(f"Token: [bold]{link.token}[/bold]")
    return draft.updated(pending_link_token=link.token)


# =============================================================================
# Commands
# =============================================================================


@app.command()
def onboard(
    restart: bool = typer.Option(False, "--restart", help="Discard the stored draft and start over"),
    submit: bool = typer.Option(True, "--submit/--no-submit", help="Store a pending registration at the end"),
) -> None:
    """Walk through the onboarding flow. Progress is saved after every answer."""
    from nality.config import settings
    from onboarding import machine
    from onboarding.draft import create_empty_draft
    from onboarding.steps import (
        ENTRY_OPTIONS,
        ENTRY_QUESTION,
        Stage,
        path_label,
        progress_percent,
        step_by_id,
    )

    setup_logging(settings.log_level)
    store = _draft_store()
    draft = create_empty_draft() if restart else store.load()
    resumed = draft.stage != Stage.IDLE and machine.has_answered_selection(draft.responses)

    console.print(
        Panel.fit(
            "[bold green]Willkommen bei Nality[/bold green]\n"
            "[dim]'b' geht einen Schritt zurück, 'q' beendet (dein Fortschritt bleibt gespeichert).[/dim]",
            title="Onboarding",
            border_style="green",
        )
    )
    if resumed:
        console.print("[dim]Gespeicherter Fortschritt gefunden, es geht dort weiter. Neu starten mit --restart.[/dim]")

    try:
        while draft.stage != Stage.REGISTRATION:
            try:
                if draft.stage == Stage.IDLE:
                    console.print(f"\n[bold]{ENTRY_QUESTION}[/bold]")
                    try:
                        draft = machine.choose_entry(draft, _pick_one(ENTRY_OPTIONS))
                    except GoBack:
                        continue

                elif draft.stage == Stage.NEUTRAL:
                    console.print(Panel(NEUTRAL_BLOCK_TEXT, title=NEUTRAL_BLOCK_TITLE, border_style="blue"))
                    console.print("  [cyan]1[/cyan]) Jetzt registrieren")
                    console.print("  [cyan]2[/cyan]) Zurück zum Pfad")
                    choice = _ask("Auswahl:")
                    if choice == "1":
                        draft = machine.continue_from_neutral(draft)
                    elif choice == "2":
                        draft = machine.return_from_neutral(draft)

                else:
                    step = step_by_id(draft.path, draft.current_step_id)
                    console.print(
                        f"\n[dim]{path_label(draft.path)} · "
                        f"{progress_percent(draft.path, step.id)}%[/dim]"
                    )
                    console.print(f"[bold]{step.text}[/bold]")
                    draft = machine.record_answers(draft, _ask_step(step))
                    draft = machine.advance(draft)

            except GoBack:
                if draft.stage == Stage.PATH:
                    draft = machine.step_back(draft)
                elif draft.stage == Stage.NEUTRAL:
                    draft = machine.return_from_neutral(draft)

            store.save(draft)

        console.print("\n[bold]Registrierung[/bold]")
        draft = draft.updated(registration=_ask_registration(draft))
        store.save(draft)

        console.print("\nWie möchtest du angesprochen werden?")
        console.print("  [cyan]1[/cyan]) Du")
        console.print("  [cyan]2[/cyan]) Sie")
        address = _ask("Auswahl:")
        draft = draft.updated(address_preference={"1": "du", "2": "sie"}.get(address))
        store.save(draft)

    except QuitOnboarding:
        store.save(draft)
        console.print("\n[dim]Fortschritt gespeichert. Bis bald![/dim]")
        return
    except GoBack:
        draft = machine.back_from_registration(draft)
        store.save(draft)
        console.print("\n[dim]Zurück zum Pfad. Starte 'nality onboard' erneut, um weiterzumachen.[/dim]")
        return

    if submit and settings.supabase_url:
        draft = _submit_pending(draft)
        store.save(draft)
    else:
        console.print("\n[dim]Nicht übermittelt. Gespeicherter Entwurf:[/dim]")
        console.print_json(draft.to_json())

    console.print("\n[green]Onboarding abgeschlossen.[/green]")


@app.command("show-draft")
def show_draft() -> None:
    """Print the stored onboarding draft."""
    draft = _draft_store().load()
    console.print_json(json.dumps(draft.to_dict(), ensure_ascii=False))


@app.command("clear-draft")
def clear_draft() -> None:
    """Delete the stored onboarding draft."""
    _draft_store().clear()
    console.print("[green]Onboarding draft cleared[/green]")


@app.command()
def health() -> None:
    """Check system health and configuration."""
    from nality.config import get_settings

    console.print("\n[bold]Nality Health Check[/bold]\n")

    try:
        settings = get_settings()
        console.print("[green]OK[/green] Configuration loaded")
        console.print(f"   Environment: {settings.nality_env}")
        console.print(f"   Log level: {settings.log_level}")

        if settings.supabase_url.startswith("https://"):
            console.print("[green]OK[/green] Supabase URL configured")
        else:
            console.print("[red]X[/red] Supabase URL missing or invalid")

        if settings.supabase_service_role_key:
            console.print("[green]OK[/green] Supabase service role key configured")
        else:
            console.print("[yellow]![/yellow]  Supabase service role key missing (pending registrations disabled)")

        console.print(f"   Draft file: {settings.draft_storage_path}")
        console.print("\n[green]All checks passed![/green]")

    except Exception as e:
        console.print(f"\n[red]X Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with required variables.[/dim]")
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from nality import __version__

    console.print(f"Nality version {__version__}")


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload for development"),
) -> None:
    """Start the API server."""
    import os

    import uvicorn

    from nality.config import settings

    setup_logging(settings.log_level)

    # Hosting platforms set PORT
    actual_port = int(os.environ.get("PORT", port))

    console.print("\n[bold green]Nality API[/bold green]")
    console.print(f"Starting server on http://localhost:{actual_port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        "nality.web.app:app",
        host="0.0.0.0",
        port=actual_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    app()
