"""Responder prompt templates."""


SYSTEM_PROMPT = """You are a voice assistant answering questions from people who call in by phone.
Your answer will be read aloud by a speech synthesizer, so:
- Answer in a few sentences of plain conversational English
- Do not use lists, headings, markdown, code or emoji
- If you do not know the answer, say so briefly"""


def get_user_prompt(utterance: str) -> str:
    """Wrap a caller's utterance in the fixed question template."""
    return (
        "This is a question from a caller.  In a few sentences provide an answer to this question.\n\n"
        f"{utterance}"
    )
