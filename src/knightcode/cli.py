"""
Knightcode CLI - local AI coding assistant.

Sends coding requests to a local Ollama or LM Studio server, falling back to
the other one when the preferred server does not answer.

Usage:
    knightcode ask 'How do I reverse a linked list?'
    knightcode explain path/to/file.py
    knightcode refactor path/to/file.py --focus performance
    knightcode fix path/to/file.ts --issue 'off by one in the loop'
    knightcode generate 'a CLI that counts words' --language python
    knightcode models --provider lmstudio

Exit codes: 0 on success, 1 on user-classified errors, 2 on unexpected errors.
"""
from __future__ import annotations

import asyncio
import functools
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from knightcode import prompts
from knightcode.core.config import AppConfig, load_config
from knightcode.core.formatting import exit_code_for, format_error_for_display
from knightcode.core.log import configure_logging
from knightcode.core.types import CompletionOptions, StreamEventType
from knightcode.registry.provider_selector import DEFAULT_FALLBACK_ORDER, ProviderSelector

if TYPE_CHECKING:
    from collections.abc import Callable


def provider_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that talks to a provider."""

    @click.option('--provider', type=click.Choice(DEFAULT_FALLBACK_ORDER), help='Preferred AI provider.')
    @click.option('--model', help='Model to use instead of the provider default.')
    @click.option('--config', 'config_path', type=click.Path(dir_okay=False), help='Read settings from this file.')
    @click.option('--verbose', '-v', is_flag=True, help='Debug logging and full error details.')
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        return func(*args, **kwargs)

    return wrapper


def read_source(path: Path) -> str:
    return path.read_text(encoding='utf-8', errors='replace')


async def initialize_provider(settings: AppConfig) -> ProviderSelector:
    selector = ProviderSelector()
    await selector.initialize(
        settings.provider,
        settings.provider_overrides(),
        provider_configs=settings.provider_configs(),
    )
    return selector


async def stream_completion(selector: ProviderSelector, options: CompletionOptions) -> None:
    """Echo the streamed answer as plain text."""
    provider = selector.get_client()
    printed = False
    stream = provider.complete_stream(options)
    try:
        async for event in stream:
            if event.type is StreamEventType.content_block_delta and event.delta is not None:
                click.echo(event.delta.text, nl=False)
                printed = True
            elif event.type is StreamEventType.message_stop and not printed and event.message is not None:
                # Providers without incremental streaming only deliver the final message
                click.echo(event.message.text, nl=False)
    finally:
        await stream.aclose()
    click.echo()


async def list_models(selector: ProviderSelector) -> None:
    provider = selector.get_client()
    click.echo(f'Models available from {provider.get_provider_name()}:')
    for name in await provider.get_models():
        marker = '*' if name == provider.get_model() else ' '
        click.echo(f' {marker} {name}')


def run(
    action: Callable[[ProviderSelector], Any],
    *,
    provider: str | None,
    model: str | None,
    config_path: str | None,
    verbose: bool,
) -> None:
    """Load settings, resolve a provider, run *action*, and exit with the right code."""
    try:
        settings = load_config({'provider': provider, 'model': model}, config_path=config_path)
        configure_logging(settings.log_level, verbose=verbose)

        async def main() -> None:
            selector = await initialize_provider(settings)
            await action(selector)

        asyncio.run(main())
    except Exception as exc:  # noqa: BLE001 - last-resort handler, maps to exit codes
        click.echo(format_error_for_display(exc, verbose=verbose), err=True)
        sys.exit(exit_code_for(exc))


def completion_command(options: CompletionOptions, **kwargs: Any) -> None:
    run(lambda selector: stream_completion(selector, options), **kwargs)


@click.group()
@click.version_option(package_name='knightcode', prog_name='Knightcode')
def cli():
    """
    Knightcode - your local AI coding assistant.

    Talks to Ollama (default) or LM Studio running on this machine.
    """


@cli.command()
@click.argument('question', nargs=-1, required=True)
@provider_options
def ask(question: tuple[str, ...], **kwargs: Any):
    """Ask a coding question."""
    completion_command(prompts.ask(' '.join(question)), **kwargs)


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@provider_options
def explain(file: Path, **kwargs: Any):
    """Explain what a source file does."""
    completion_command(prompts.explain(file.name, read_source(file)), **kwargs)


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--focus', help='What to optimise for, e.g. performance or readability.')
@provider_options
def refactor(file: Path, focus: str | None, **kwargs: Any):
    """Suggest a refactoring of a source file."""
    completion_command(prompts.refactor(file.name, read_source(file), focus), **kwargs)


@cli.command()
@click.argument('file', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--issue', help='Description of the bug to fix.')
@provider_options
def fix(file: Path, issue: str | None, **kwargs: Any):
    """Find and fix bugs in a source file."""
    completion_command(prompts.fix(file.name, read_source(file), issue), **kwargs)


@cli.command()
@click.argument('description', nargs=-1, required=True)
@click.option('--language', '-l', help='Target programming language.')
@provider_options
def generate(description: tuple[str, ...], language: str | None, **kwargs: Any):
    """Generate code from a description."""
    completion_command(prompts.generate(' '.join(description), language), **kwargs)


@cli.command()
@provider_options
def models(**kwargs: Any):
    """List the models the resolved provider offers."""
    run(list_models, **kwargs)


def main() -> None:
    cli()


if __name__ == '__main__':
    main()
