"""
Derived Q/A Generation

Asks the generation backend for one question/answer pair that
summarises a document excerpt.
"""

import re

from quarry.core.interfaces import GenerationBackendProtocol
from quarry.core.types import QAPair
from quarry.observability.logging import get_logger

logger = get_logger(__name__)

QA_PROMPT_TEMPLATE = (
    "Given the following context, generate one concise Question and its Answer.\n\n"
    "Context:\n{context}\n\n"
    "Format:\nQuestion: <question>\nAnswer: <answer>\n"
)

_QUESTION_PREFIX = re.compile(r"^\s*Question:\s*", re.IGNORECASE)


def parse_qa(text: str) -> QAPair:
    """
    Parse "Question: ...\\nAnswer: ..." output.

    Text without an answer marker yields an empty answer.
    """
    question_part, _, answer_part = text.partition("\nAnswer:")
    question = _QUESTION_PREFIX.sub("", question_part).strip()
    return QAPair(question=question, answer=answer_part.strip())


class QAGenerator:
    """Generates a derived Q/A pair; failures return None."""

    def __init__(self, backend: GenerationBackendProtocol, max_tokens: int = 300):
        self._backend = backend
        self._max_tokens = max_tokens

    async def generate(self, context: str) -> QAPair | None:
        if not context.strip():
            return None

        try:
            text = await self._backend.complete(
                QA_PROMPT_TEMPLATE.format(context=context),
                max_tokens=self._max_tokens,
            )
        except Exception as e:
            logger.warning("Q/A generation failed", error=e)
            return None

        qa = parse_qa(text or "")
        if not qa.is_complete:
            logger.warning("Q/A generation returned an incomplete pair", raw_length=len(text or ""))
            return None
        return qa
