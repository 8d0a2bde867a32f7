"""clapsense entry point: CLI args, async loop, and interactive control."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from clapsense.config import ClapConfig, get_config, merge_config
from clapsense.utils.logger import console, setup_logging

logger = logging.getLogger(__name__)

_EXIT_WORDS = ("exit", "quit", "q")


def parse_pattern(value: str) -> tuple[int, int]:
    """Parse a ``COUNT:MAX_DELAY_MS`` pattern such as ``2:1000``."""
    try:
        count_text, delay_text = value.split(":", 1)
        count, delay = int(count_text), int(delay_text)
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid pattern {value!r}, expected COUNT:MAX_DELAY_MS (e.g. 2:1000)"
        ) from None
    if count < 1 or delay < 1:
        raise argparse.ArgumentTypeError(f"pattern {value!r} needs COUNT >= 1 and MAX_DELAY_MS >= 1")
    return count, delay


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="clapsense",
        description="Listen to the microphone and react to claps and clap patterns",
    )
    parser.add_argument(
        "--backend",
        choices=["sox", "sounddevice"],
        help="Capture backend (default from CLAPSENSE_BACKEND, else sox)",
    )
    parser.add_argument(
        "--source",
        help="sox input, e.g. 'alsa hw:1,0' or 'coreaudio default'",
    )
    parser.add_argument(
        "--pattern",
        action="append",
        type=parse_pattern,
        metavar="COUNT:MAX_DELAY_MS",
        help="Report COUNT claps within MAX_DELAY_MS (repeatable, default 2:1000)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check that the capture backend is usable and exit",
    )
    return parser.parse_args(argv)


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.backend:
        overrides["backend"] = args.backend
    if args.source:
        overrides["audio_source"] = args.source
    return overrides


def _run_check(config: ClapConfig) -> bool:
    """Check the backend prerequisites and print a status line for each."""
    from clapsense.audio.sox import sox_available

    console.print("\n[bold]clapsense System Check[/]\n")
    all_ok = True

    needs_sox = config.backend == "sox" or config.cleaning_enabled
    if needs_sox:
        if sox_available(config.sox_binary):
            console.print(f"  [green]✅[/] sox: {config.sox_binary} found")
        else:
            console.print(f"  [red]❌[/] sox: {config.sox_binary} not found on PATH")
            all_ok = False

    if config.backend == "sounddevice":
        try:
            import sounddevice as sd

            device = sd.query_devices(kind="input")
            console.print(f"  [green]✅[/] microphone: {device['name']}")
        except Exception as e:
            console.print(f"  [red]❌[/] microphone: {e}")
            all_ok = False
    else:
        console.print(f"  [dim]ℹ️[/]  audio source: {config.audio_source}")

    if config.cleaning_enabled:
        if Path(config.noise_profile).is_file():
            console.print(f"  [green]✅[/] noise profile: {config.noise_profile}")
        else:
            console.print(f"  [red]❌[/] noise profile: {config.noise_profile} not found")
            all_ok = False

    console.print()
    if all_ok:
        console.print("[bold green]Ready to listen.[/]\n")
    else:
        console.print("[bold yellow]Some components unavailable.[/]\n")
    return all_ok


async def _listen_mode(
    overrides: dict[str, Any],
    patterns: list[tuple[int, int]],
) -> None:
    """Listen until the user types 'exit'. 'pause' and 'resume' control the loop."""
    from clapsense.listener import ClapListener

    listener = ClapListener()
    listener.on_clap(lambda: console.print("[bold cyan]👏 clap[/]"))
    for count, max_delay in patterns:
        listener.on_claps(
            count,
            max_delay,
            lambda delay, count=count: console.print(
                f"[bold magenta]👏 x{count}[/] within {delay}ms"
            ),
        )

    await listener.start(overrides)
    console.print(
        "[bold green]clapsense[/] listening. "
        "Type [bold]pause[/], [bold]resume[/] or [bold]exit[/].\n"
    )

    loop = asyncio.get_running_loop()
    try:
        while True:
            try:
                command = await loop.run_in_executor(None, input)
            except EOFError:
                break
            command = command.strip().lower()
            if command in _EXIT_WORDS:
                break
            if command == "pause":
                listener.pause()
                console.print("[dim]Paused (takes effect after the current capture).[/]")
            elif command == "resume":
                listener.resume()
                listener.listen()
                console.print("[dim]Resumed.[/]")
            elif command:
                console.print(f"[yellow]Unknown command:[/] {command}")
    finally:
        await listener.stop()


async def _async_main(argv: list[str] | None = None) -> int:
    """Async entry point."""
    args = _parse_args(argv)

    config = get_config()
    setup_logging(
        verbose=args.verbose,
        log_level=config.log_level,
        module_levels=config.log_levels,
    )

    overrides = _cli_overrides(args)
    try:
        effective = merge_config(config, overrides)
    except ValidationError as e:
        console.print(f"[bold red]Configuration error:[/] {e}")
        return 1

    if args.check:
        return 0 if _run_check(effective) else 1

    await _listen_mode(overrides, args.pattern or [(2, 1000)])
    console.print("\n[bold green]Bye![/]")
    return 0


def main() -> None:
    """Synchronous entry point."""
    try:
        sys.exit(asyncio.run(_async_main()))
    except KeyboardInterrupt:
        console.print("\n[bold green]Bye![/]")


if __name__ == "__main__":
    main()
