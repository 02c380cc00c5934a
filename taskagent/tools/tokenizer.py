"""Shell-like command splitting for RUN messages."""

from typing import List, Optional

QUOTE_CHARS = ("'", '"')


def parse_command(cmd: str) -> List[str]:
    """
    Split a command string into argv-style tokens.

    Only spaces outside quotes separate tokens. A quote character opens a
    quoted span and only the same character closes it, so the other quote
    character is kept literally inside the span. Quotes that open or close
    a span are dropped. There is no escape syntax.

    Args:
        cmd: Raw command string from the controller

    Returns:
        List of tokens (never empty; '' yields [''])

    Example:
        >>> parse_command('run -x "a b" c')
        ['run', '-x', 'a b', 'c']
        >>> parse_command("echo 'it\\"s'")
        ['echo', 'it"s']
    """
    chunks = [""]
    quote_char: Optional[str] = None

    for letter in cmd:
        if quote_char is None and letter in QUOTE_CHARS:
            quote_char = letter
        elif letter == quote_char:
            quote_char = None
        elif letter == " " and quote_char is None:
            chunks.append("")
        else:
            chunks[-1] += letter

    return chunks
