"""Whitespace normalization for extracted document text."""
import re

_HORIZONTAL_WS = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")
_NEWLINE_RUN = re.compile(r"\n+")
_BLANK_LINE_RUN = re.compile(r"\n{2,}")


def normalize_text(raw_text: str, keep_paragraphs: bool = False) -> str:
    """Collapse whitespace in text produced by a document extractor.

    Runs of spaces, tabs and other non-newline whitespace become one space and
    runs of newlines become one newline. With ``keep_paragraphs`` a run holding
    two or more newlines becomes a single blank line instead, so paragraph
    boundaries survive for the paragraph chunker.

    Args:
        raw_text: Text as returned by extraction
        keep_paragraphs: Preserve blank-line paragraph separators

    Returns:
        Normalized text with no leading or trailing whitespace

    Raises:
        TypeError: If raw_text is not a string
    """
    if not isinstance(raw_text, str):
        raise TypeError(f"Expected str, got {type(raw_text).__name__}")

    text = raw_text.replace("\r\n", "\n").replace("\r", "\n")
    text = _HORIZONTAL_WS.sub(" ", text)
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)

    if keep_paragraphs:
        text = _BLANK_LINE_RUN.sub("\n\n", text)
    else:
        text = _NEWLINE_RUN.sub("\n", text)

    return text.strip()
