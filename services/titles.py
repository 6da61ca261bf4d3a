"""Thread title derivation from the first user message."""
import re

PLACEHOLDER_TITLE = "New Chat"
MAX_TITLE_LENGTH = 50

SENTENCE_END = re.compile(r"[.!?]")


def generate_title(text: str) -> str:
    """
    Derive a short title from a message.

    The first sentence is used when one ends inside the text (terminator
    dropped). Otherwise the text is capped at 50 characters, backing off to
    the last whitespace so no word is split.
    """
    text = text.replace("\r", " ").replace("\n", " ").strip()

    match = SENTENCE_END.search(text)
    if match:
        title = text[:match.start()].strip()
    elif len(text) <= MAX_TITLE_LENGTH:
        title = text
    else:
        title = text[:MAX_TITLE_LENGTH]
        if not text[MAX_TITLE_LENGTH].isspace():
            boundary = max(title.rfind(" "), title.rfind("\t"))
            if boundary > 0:
                title = title[:boundary]
        title = title.rstrip()

    return title or PLACEHOLDER_TITLE
