"""core.formatting

Turns exceptions into the text the CLI prints, and into exit codes.
"""

from __future__ import annotations

import json
import traceback

from knightcode.core.exceptions import ErrorCategory, KnightcodeError

EXIT_OK = 0
EXIT_USER_ERROR = 1
EXIT_UNEXPECTED_ERROR = 2


def format_error_for_display(error: BaseException, *, verbose: bool = False) -> str:
    """Render *error* as ``[category] message`` plus a resolution hint.

    Details and the traceback (including the ``__cause__`` chain) are only
    shown when *verbose* is set.
    """
    if isinstance(error, KnightcodeError):
        lines = [f'[{error.category}] {error}']
        if error.resolution:
            lines.append(f'Resolution: {error.resolution}')
        if verbose and error.details:
            lines.append(f'Details: {json.dumps(error.details, indent=2, default=str)}')
    else:
        lines = [f'[{ErrorCategory.unknown}] {str(error) or error.__class__.__name__}']

    if verbose:
        lines.append(''.join(traceback.format_exception(error)).rstrip())
    return '\n'.join(lines)


def exit_code_for(error: BaseException | None) -> int:
    if error is None:
        return EXIT_OK
    if isinstance(error, KnightcodeError):
        return error.exit_code
    return EXIT_UNEXPECTED_ERROR
