"""LLM responder service."""
import logging
import re
from typing import Optional
from openai import AsyncOpenAI

from phonebot.core.config import settings
from phonebot.services.agent.prompt import SYSTEM_PROMPT, get_user_prompt

logger = logging.getLogger(__name__)

_WHITESPACE_RUN = re.compile(r"\s+")


class ResponderError(Exception):
    """The language model did not produce an answer."""


def sanitize_for_speech(text: str, max_chars: Optional[int] = None) -> str:
    """
    Make model output safe for speech synthesis.

    Straight apostrophes become typographic ones and colons become periods
    (both are read out oddly by the synthesizer), newlines and whitespace
    runs collapse to single spaces, and the result is cut at a word
    boundary when longer than max_chars.
    """
    text = text.replace("'", "’")
    text = text.replace(":", ".")
    text = _WHITESPACE_RUN.sub(" ", text).strip()

    if max_chars and len(text) > max_chars:
        cut = text[:max_chars]
        if " " in cut:
            cut = cut.rsplit(" ", 1)[0]
        text = cut.rstrip()
    return text


class Responder:
    """Turns a finalized caller utterance into a spoken answer."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        max_chars: Optional[int] = None,
    ):
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = model or settings.responder_model
        self.max_tokens = max_tokens or settings.responder_max_tokens
        self.max_chars = max_chars or settings.responder_max_chars

    async def respond(self, utterance: str) -> str:
        """
        Answer a caller's utterance.

        Args:
            utterance: Finalized transcript text

        Returns:
            Sanitized answer text

        Raises:
            ResponderError: if the model call fails or returns nothing
        """
        logger.info(f"[RESPONDER] Prompting {self.model} with utterance: '{utterance[:200]}'")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": get_user_prompt(utterance)},
                ],
                max_tokens=self.max_tokens,
                temperature=0.3,
            )
            content = response.choices[0].message.content
        except Exception as e:
            logger.error(f"[RESPONDER] Model call failed: {type(e).__name__}: {str(e)}")
            raise ResponderError(f"Model call failed: {str(e)}") from e

        answer = sanitize_for_speech(content or "", self.max_chars)
        if not answer:
            raise ResponderError("Model returned an empty answer")

        logger.info(f"[RESPONDER] Answer ({len(answer)} chars): '{answer[:200]}'")
        return answer
