"""prompts

Request builders for the CLI commands.  Each returns the `CompletionOptions`
sent to whichever provider is active.
"""

from __future__ import annotations

from knightcode.core.types import CompletionOptions, Message, Role

SYSTEM_PROMPT = (
    'You are Knightcode, a coding assistant running on the user\'s machine. '
    'Answer precisely, prefer working code over prose, and say so when you are unsure.'
)


def _request(prompt: str, **options: object) -> CompletionOptions:
    return CompletionOptions(
        messages=[Message(role=Role.user, content=prompt)],
        system=SYSTEM_PROMPT,
        stream=True,
        **options,
    )


def _fenced(filename: str, code: str) -> str:
    return f'File: {filename}\n```\n{code}\n```'


def ask(question: str) -> CompletionOptions:
    return _request(question)


def explain(filename: str, code: str) -> CompletionOptions:
    return _request(
        'Explain what the following code does, how it works, and anything surprising in it.\n\n'
        + _fenced(filename, code),
    )


def refactor(filename: str, code: str, focus: str | None = None) -> CompletionOptions:
    goal = f'Focus on {focus}.' if focus else 'Focus on readability and maintainability.'
    return _request(
        f'Refactor the following code without changing its behaviour. {goal} '
        'Return the full refactored code, then a short list of the changes.\n\n' + _fenced(filename, code),
        temperature=0.2,
    )


def fix(filename: str, code: str, issue: str | None = None) -> CompletionOptions:
    problem = f'The reported problem is: {issue}' if issue else 'Find and fix any bugs.'
    return _request(
        f'{problem}\nReturn the corrected code and explain each fix briefly.\n\n' + _fenced(filename, code),
        temperature=0.2,
    )


def generate(description: str, language: str | None = None) -> CompletionOptions:
    target = f' in {language}' if language else ''
    return _request(f'Write code{target} for the following request. Return only the code.\n\n{description}')
