"""Utility helpers used across ``rxotel`` modules."""

import traceback


# the function to get the full error information from an exception.
def get_full_error_info(e: BaseException) -> str:
    """
    Get the full error information from an exception.

    Used as the default error stack marshaler, so the text includes the
    traceback whenever the exception carries one.

    Args:
        e (BaseException): The exception to get the error information from.

    Returns:
        str: The full error information.
    """
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))


def parse_caller(caller) -> tuple[str, int] | None:
    """Split a ``<filepath>:<line>`` caller string.

    Returns ``None`` when the value is not a string, has no separator, has an
    empty path or a non-numeric line.
    """
    if not isinstance(caller, str):
        return None
    filepath, sep, line = caller.rpartition(":")
    if not sep or not filepath:
        return None
    try:
        return filepath, int(line)
    except ValueError:
        return None
