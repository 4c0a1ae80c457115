"""``devgate`` command line: the presentation layer over the activation machine."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Awaitable, Callable

import typer

from devgate.services.activation import ActivationEvent, ActivationState, AuthStateMachine, EventKind
from devgate.services.bootstrap import build_machine
from devgate.services.logging import setup_logging
from devgate.services.settings import Settings, SettingsError, load_settings

app = typer.Typer(help="Device activation gate.", no_args_is_help=True)

EXIT_OK = 0
EXIT_NOT_APPROVED = 1
EXIT_CONFIG = 2


def _settings() -> Settings:
    try:
        settings = load_settings()
    except SettingsError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(EXIT_CONFIG)
    setup_logging(settings)
    return settings


def _echo_event(event: ActivationEvent) -> None:
    if event.kind is EventKind.STATE:
        line = f"[{event.state.value}]"
        if event.message:
            line += f" {event.message}"
        typer.echo(line)
    elif event.kind is EventKind.ERROR:
        typer.echo(f"error: {event.message}", err=True)
    elif event.kind is EventKind.TIMEOUT:
        typer.echo(event.message, err=True)
    elif event.message:
        typer.echo(event.message)


def _run(action: Callable[[AuthStateMachine], Awaitable[ActivationState]], *, wait: bool = False) -> ActivationState:
    settings = _settings()

    async def _main() -> ActivationState:
        machine = build_machine(settings)
        machine.subscribe(_echo_event)
        try:
            state = await action(machine)
            if wait and machine.polling:
                await machine.wait_polling()
                state = machine.state
            return state
        finally:
            await machine.close()

    return asyncio.run(_main())


def _exit_for(state: ActivationState) -> None:
    raise typer.Exit(EXIT_OK if state is ActivationState.APPROVED else EXIT_NOT_APPROVED)


@app.command("info")
def cmd_info():
    """Show the device descriptor sent to the authority."""
    settings = _settings()
    machine = build_machine(settings)
    info = machine.identity.describe()
    typer.echo(f"Device:   {info.model}")
    typer.echo(f"OS:       {info.os_version} ({info.platform_version_code})")
    typer.echo(f"ID:       {info.short_id}...")
    typer.echo(f"Storage:  {'encrypted' if machine.store.backend.encrypted else 'plain (fallback)'}")


@app.command("status")
def cmd_status():
    """Show the persisted authorization record without contacting the authority."""
    settings = _settings()
    machine = build_machine(settings)
    record = machine.store.record()
    typer.echo(f"verified:      {record.verified}")
    if record.verified_at is not None:
        moment = datetime.fromtimestamp(record.verified_at / 1000, tz=timezone.utc)
        typer.echo(f"verified at:   {moment.isoformat()}")
    typer.echo(f"request sent:  {record.request_sent}")
    _exit_for(ActivationState.APPROVED if record.verified else ActivationState.INITIAL)


@app.command("gate")
def cmd_gate(
    wait: bool = typer.Option(False, "--wait", help="Keep polling while approval is pending."),
):
    """Exit 0 when this device is approved; checks the authority only if a request is outstanding."""

    async def _action(machine: AuthStateMachine) -> ActivationState:
        return await machine.resume()

    _exit_for(_run(_action, wait=wait))


@app.command("wait")
def cmd_wait():
    """Block until an outstanding request is decided or the poll budget runs out."""

    async def _action(machine: AuthStateMachine) -> ActivationState:
        state = await machine.resume()
        if state is ActivationState.INITIAL:
            typer.echo("no access request outstanding; run `devgate request` first", err=True)
        return state

    _exit_for(_run(_action, wait=True))


@app.command("request")
def cmd_request(
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Poll until a decision or timeout."),
):
    """Ask the administrator to approve this device."""

    async def _action(machine: AuthStateMachine) -> ActivationState:
        state = await machine.resume()
        if state in (ActivationState.APPROVED, ActivationState.PENDING):
            return state
        return await machine.request_access()

    _exit_for(_run(_action, wait=wait))


@app.command("code")
def cmd_code(code: str = typer.Argument(..., help="Activation code, e.g. XXXX-XXXX-XXXX")):
    """Activate instantly with a one-time code."""

    async def _action(machine: AuthStateMachine) -> ActivationState:
        state = await machine.resume()
        if state is ActivationState.APPROVED:
            return state
        return await machine.verify_code(code)

    _exit_for(_run(_action))


@app.command("retry")
def cmd_retry(
    wait: bool = typer.Option(True, "--wait/--no-wait", help="Poll until a decision or timeout."),
):
    """Retry after a pause, rejection or poll timeout."""

    async def _action(machine: AuthStateMachine) -> ActivationState:
        state = await machine.resume()
        if state is ActivationState.APPROVED:
            return state
        return await machine.retry()

    _exit_for(_run(_action, wait=wait))


@app.command("reset")
def cmd_reset(yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation.")):
    """Forget the local authorization; the device id is kept."""
    if not yes:
        typer.confirm("Forget this device's authorization?", abort=True)

    async def _action(machine: AuthStateMachine) -> ActivationState:
        return await machine.reset()

    _run(_action)
    typer.echo("authorization reset")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
