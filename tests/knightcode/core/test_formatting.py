from knightcode.core.exceptions import (
    AIServiceError,
    ConnectionFailedError,
    ErrorCategory,
    InitializationError,
    ProviderNotFoundError,
)
from knightcode.core.formatting import exit_code_for, format_error_for_display


def test_user_error_shows_category_message_and_resolution() -> None:
    error = ConnectionFailedError('Ollama is down', resolution='Run ollama serve.')
    text = format_error_for_display(error)
    assert text.splitlines() == ['[connection] Ollama is down', 'Resolution: Run ollama serve.']


def test_default_resolution_is_used() -> None:
    text = format_error_for_display(InitializationError('not ready'))
    assert '[initialization] not ready' in text
    assert 'Resolution: Initialize a provider' in text


def test_verbose_adds_details_and_cause_chain() -> None:
    try:
        try:
            raise OSError('socket closed')
        except OSError as exc:
            raise AIServiceError('bad answer', details={'status': 502}) from exc
    except AIServiceError as error:
        quiet = format_error_for_display(error)
        loud = format_error_for_display(error, verbose=True)

    assert 'Details' not in quiet
    assert 'socket closed' not in quiet
    assert '"status": 502' in loud
    assert 'socket closed' in loud
    assert 'Traceback' in loud


def test_unexpected_error_is_unknown_category() -> None:
    text = format_error_for_display(RuntimeError('kaboom'))
    assert text == '[unknown] kaboom'


def test_exit_codes() -> None:
    assert exit_code_for(None) == 0
    assert exit_code_for(ConnectionFailedError()) == 1
    assert exit_code_for(ProviderNotFoundError('nope')) == 1
    assert exit_code_for(KeyError('x')) == 2  # noqa: PLR2004


def test_provider_not_found_is_a_configuration_error() -> None:
    assert ProviderNotFoundError.category is ErrorCategory.configuration
    assert ConnectionFailedError().message == 'ConnectionFailedError'
