"""Context assembly and answer composition for file QA and quiz generation."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ExtractionEmpty, MalformedQuery
from ..models import Chunk, DocumentRecord
from .llm import ChatClient
from .retrieval import leading_chunks, retrieve

logger = logging.getLogger(__name__)

CONTEXT_DELIMITER = "\n\n---\n\n"
PREVIEW_CHARS = 200
NO_CONTENT_ANSWER = "No extractable content was found in this document."

QA_PROMPT = (
    "You are a helpful study assistant. Use the following extracted content from a user's "
    "uploaded file to answer the question. If the answer cannot be found in the context, say "
    '"I cannot find the answer in the provided document." Keep answers concise unless asked '
    "to explain.\n\n{context}\n\nQuestion: {question}\n\nAnswer:"
)
QUIZ_PROMPT = (
    "Create a quiz from the following extracted content. Output JSON with keys: "
    "mcq: [{{question, options:[A,B,C,D], answer}}], tf: [{{q, answer}}], short: [{{q, answer}}]. "
    "Use source snippets as context where relevant.\n\n{context}"
)
ANALYSIS_PROMPT = (
    "The following text was extracted from an uploaded file. Please analyze it and provide "
    "a helpful response:\n\n---\n\n{text}"
)

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")


@dataclass
class ContextSelection:
    """Chunks chosen for a prompt together with their rendered context block."""

    selected: List[Chunk] = field(default_factory=list)
    context: str = ""

    @property
    def previews(self) -> List[Dict[str, str]]:
        return [{"id": c.id, "preview": c.text[:PREVIEW_CHARS]} for c in self.selected]


def assemble_context(chunks: Sequence[Chunk]) -> str:
    """Render chunks as numbered ``Context i:`` sections in the given order."""
    return CONTEXT_DELIMITER.join(f"Context {i}: {c.text}" for i, c in enumerate(chunks, start=1))


def select_context(record: DocumentRecord, question: str, limit: int) -> ContextSelection:
    """Pick the chunks of ``record`` most relevant to ``question``.

    A record without chunks yields an empty selection.
    """
    if not question or not question.strip():
        raise MalformedQuery("Missing question")
    selected = retrieve(record.chunks, question, limit)
    return ContextSelection(selected=selected, context=assemble_context(selected))


def select_leading(record: DocumentRecord, limit: int) -> ContextSelection:
    """Take the first ``limit`` chunks of ``record``, for whole-document prompts."""
    selected = leading_chunks(record.chunks, limit)
    return ContextSelection(selected=selected, context=assemble_context(selected))


def answer_question(
    record: DocumentRecord, question: str, client: ChatClient, limit: int
) -> Dict[str, Any]:
    """Answer ``question`` from the record's content.

    Returns a dict with ``text``, ``usedChunks`` and ``context``.  The model
    is not called when the record has no content.
    """
    selection = select_context(record, question, limit)
    if not selection.selected:
        return {"text": NO_CONTENT_ANSWER, "usedChunks": [], "context": ""}
    prompt = QA_PROMPT.format(context=selection.context, question=question)
    text = client.complete(prompt, system="You are a helpful study assistant.", max_tokens=900)
    return {"text": text, "usedChunks": selection.previews, "context": selection.context}


def generate_quiz(record: DocumentRecord, client: ChatClient, limit: int) -> Dict[str, Any]:
    """Ask the model for a quiz over the leading chunks of ``record``.

    Returns ``{"quiz": <parsed JSON or None>, "text": <raw reply>}``.

    Raises:
        ExtractionEmpty: if the record has no chunks.
    """
    if not record.chunks:
        raise ExtractionEmpty()
    selection = select_leading(record, limit)
    prompt = QUIZ_PROMPT.format(context=selection.context)
    text = client.complete(prompt, system="File quiz generator", max_tokens=1200, temperature=0.3)
    return {"quiz": extract_json(text), "text": text}


def analyze_upload(text: str, client: ChatClient) -> str:
    prompt = ANALYSIS_PROMPT.format(text=text)
    return client.complete(prompt, system="You are a helpful study assistant analyzing a document.")


def extract_json(text: Optional[str]) -> Optional[Any]:
    """Pull a JSON value out of a model reply.

    Tries a ```json fenced block first, then everything from the first
    ``{``/``[`` onwards, then that span cut at the last ``}``/``]``.
    Returns None when nothing parses.
    """
    if not text or not isinstance(text, str):
        return None
    match = _JSON_FENCE.search(text)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass
    starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
    if not starts:
        return None
    candidate = text[min(starts):]
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    end = max(candidate.rfind("}"), candidate.rfind("]"))
    if end == -1:
        return None
    try:
        return json.loads(candidate[: end + 1])
    except json.JSONDecodeError:
        logger.debug("Could not parse JSON from model reply")
        return None
