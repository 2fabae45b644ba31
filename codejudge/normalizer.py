def normalize(output: str) -> str:
    """Canonicalize program output for exact-match comparison.

    CRLF and lone CR line endings become LF and the result is trimmed at both
    ends. Interior whitespace, case and numeric formatting are left alone.
    """
    if not output:
        return ''
    return output.replace('\r\n', '\n').replace('\r', '\n').strip()


def outputs_match(actual: str, expected: str) -> bool:
    return normalize(actual) == normalize(expected)
