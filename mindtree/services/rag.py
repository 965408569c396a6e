"""
Retrieval-augmented answers for the Ipê Mind Tree assistant.

Builds a prompt from the selected subprompt, the best matching notes, the
graph digest and the conversation so far, then asks the LLM.
"""

import logging
import time
from typing import Callable, Optional

import duckdb

from ..config import config
from ..exceptions import LLMError
from .llm import LLMClient
from .obsidian_service import ObsidianService
from .subprompts import SubpromptService


MAIN_PROMPT = (
    "You are the Ipê Mind Tree assistant. You help a community share, connect "
    "and develop ideas. Use the notes provided as your knowledge and answer "
    "clearly and concisely."
)

NO_RESULTS_MESSAGE = "No relevant Obsidian documents found for this query."
TRUNCATION_NOTE = "\n\n[...Document continues but was truncated to save space...]\n"

FALLBACK_SUGGESTION = (
    "\n\nIn the meantime, you can ask about:\n"
    "- Notes imported into Ipê Mind Tree\n"
    "- How the different spheres (Governance, Finance, Education) work\n"
    "- Suggestions for connecting existing ideas"
)


def friendly_error(error: LLMError) -> str:
    """User-facing message for a failed LLM call."""
    if error.status_code == 429:
        message = (
            "The AI service is temporarily overloaded. Wait a few seconds and try "
            "again, or ask a shorter, more specific question."
        )
    elif error.status_code == 404:
        message = "The requested AI model is not available right now. Please try again later."
    elif error.status_code == 400:
        message = "Your question may be too complex to process. Try simplifying it or splitting it up."
    elif error.status_code is None:
        message = "Could not connect to the AI service. Please try again in a few minutes."
    else:
        message = "Sorry, I could not process your question right now."
    return message + FALLBACK_SUGGESTION


class RagService:
    """
    Answers questions using the note graph as context.
    """

    def __init__(
        self,
        obsidian_service: ObsidianService,
        subprompt_service: SubpromptService,
        llm: LLMClient,
        clock: Callable[[], float] = time.time
    ):
        self.obsidian_service = obsidian_service
        self.subprompt_service = subprompt_service
        self.llm = llm
        self.clock = clock
        self._context = ""
        self._context_updated_at: Optional[float] = None

    def get_obsidian_context(self) -> str:
        """
        The graph digest, refreshed at most once per configured interval.

        A failed refresh leaves the context empty until the next attempt.
        """
        now = self.clock()
        if self._context_updated_at is None or now - self._context_updated_at > config.context_ttl_seconds:
            try:
                self._context = self.obsidian_service.get_obsidian_context()
                logging.info("Obsidian context updated")
            except duckdb.Error as e:
                logging.error(f"Error updating Obsidian context: {e}")
                self._context = ""
            self._context_updated_at = now
        return self._context

    def semantic_search_obsidian(self, query: str, limit: Optional[int] = None) -> str:
        """
        Format the best matching notes for the prompt.

        The configured character budget is shared evenly between documents;
        longer documents are cut.
        """
        limit = limit or config.get("rag.search_limit", 5)
        nodes = self.obsidian_service.search_obsidian_nodes(query, limit)
        if not nodes:
            return NO_RESULTS_MESSAGE

        per_document = config.get("rag.search_char_budget", 40000) // len(nodes)
        parts = [f"## TOP {len(nodes)} MOST RELEVANT OBSIDIAN DOCUMENTS:\n"]
        for index, node in enumerate(nodes, 1):
            content = node.content or ""
            if len(content) > per_document:
                content = content[:max(per_document - 100, 0)] + TRUNCATION_NOTE
            parts.append(
                f"### DOCUMENT-{index}: {node.title}\n"
                f"ID: {node.id}, Path: {node.path}\n"
                f"Tags: {', '.join(node.tags) if node.tags else 'none'}\n\n"
                f"CONTENT:\n{content}\n\n"
                f"--- END OF DOCUMENT-{index} ---\n"
            )

        context = "\n".join(parts)
        logging.info(f"Search context: {len(nodes)} documents, {len(context)} characters")
        return context

    def build_prompt(self, question: str, chat_history: str = "") -> str:
        subprompt = self.subprompt_service.select_subprompt_record(question)
        if subprompt:
            branch = (
                f"## You are currently operating in the {subprompt.sphere or subprompt.name} mode.\n"
                f"{subprompt.content}"
            )
        else:
            branch = "## No specific sphere is activated. Use the main prompt as your guide."

        sections = [
            branch,
            self.semantic_search_obsidian(question),
            self.get_obsidian_context(),
        ]
        if chat_history:
            sections.append(f"## Previous conversation history:\n{chat_history}")
        sections.append(f"User question: {question}")
        return "\n\n".join(section for section in sections if section)

    def query(self, question: str, chat_history: str = "") -> str:
        """
        Answer a question. LLM failures come back as a friendly message.
        """
        prompt = self.build_prompt(question, chat_history)
        try:
            answer = self.llm.generate(prompt, system_prompt=MAIN_PROMPT, purpose="rag")
        except LLMError as e:
            logging.error(f"Assistant query failed: {e}")
            return friendly_error(e)

        if not answer.strip():
            return "I couldn't generate a proper response. Please try again with a different question."
        return answer
