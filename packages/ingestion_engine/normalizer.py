import re

_TAG_PATTERN = re.compile(r"<[^>]*>?")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_text(text) -> str:
    """Strip markup tags and collapse whitespace.

    Tags (including a dangling ``<...`` at the end of the input) are replaced
    by a single space so adjacent words do not fuse together. The result has
    no leading/trailing whitespace, so normalizing twice is a no-op.
    """
    if not text:
        return ""

    cleaned = _TAG_PATTERN.sub(" ", str(text))
    return _WHITESPACE_PATTERN.sub(" ", cleaned).strip()
