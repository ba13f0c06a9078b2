"""
Retrieval of related pages from the same book.

Retrieved pages are filtered by similarity, exclude the page being
processed, and are packed into a context block under a character budget.
Retrieval problems never block drafting: they yield an empty context.
"""
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel

from summarization.models import RagContextPage, RagMetadata
from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

CONTEXT_HEADER = "Context from previous pages in the book:\n---\n"
CONTEXT_FOOTER = "---"
MIN_REMAINING_CHARS = 100


class RagProfile(BaseModel):
    """Retrieval limits."""
    max_pages: int
    similarity_threshold: float
    max_context_chars: int


NORMAL_PROFILE = RagProfile(
    max_pages=config.RAG_MAX_PAGES,
    similarity_threshold=config.RAG_SIMILARITY_THRESHOLD,
    max_context_chars=config.RAG_MAX_CONTEXT_CHARS,
)
STRICT_PROFILE = RagProfile(
    max_pages=config.RAG_STRICT_MAX_PAGES,
    similarity_threshold=config.RAG_STRICT_SIMILARITY_THRESHOLD,
    max_context_chars=config.RAG_STRICT_MAX_CONTEXT_CHARS,
)


def profile_for(strict_mode: bool) -> RagProfile:
    return STRICT_PROFILE if strict_mode else NORMAL_PROFILE


def format_context(pages: List[RagContextPage], max_chars: int) -> Tuple[str, List[int]]:
    """Pack pages into a prompt block without exceeding ``max_chars``.

    A page that does not fit is truncated when at least
    ``MIN_REMAINING_CHARS`` are left, otherwise it and the rest are dropped.

    Returns:
        The context block (empty when nothing fits) and the page numbers included
    """
    if not pages:
        return "", []

    overhead = len(CONTEXT_HEADER) + len(CONTEXT_FOOTER)
    budget = max_chars - overhead
    entries, included = [], []

    for page in pages:
        label = f"Page {page.page_number} ({page.title})" if page.title else f"Page {page.page_number}"
        entry = f"{label}:\n{page.content}\n\n"
        if len(entry) <= budget:
            entries.append(entry)
            included.append(page.page_number)
            budget -= len(entry)
            continue
        if budget >= MIN_REMAINING_CHARS:
            entries.append(entry[: budget - 5].rstrip() + "...\n\n")
            included.append(page.page_number)
        break

    if not entries:
        return "", []
    return CONTEXT_HEADER + "".join(entries) + CONTEXT_FOOTER, included


class ContextRetriever:
    """Finds related pages of a book through the vector store."""

    def __init__(self, store: Optional[Any], enabled: bool = config.RAG_ENABLED):
        """Initialize retriever.

        Args:
            store: Object with ``query(query_text, book_id, n_results, exclude_page)``
            enabled: When False every retrieval returns an empty context
        """
        self.store = store
        self.enabled = enabled and store is not None

    def retrieve(
        self,
        book_id: str,
        current_page: int,
        query_text: str,
        max_pages: int,
        similarity_threshold: float,
    ) -> List[RagContextPage]:
        """Related pages, most similar first, never the current page."""
        hits = self.store.query(
            query_text, book_id, n_results=max_pages + 1, exclude_page=current_page
        )
        pages = [
            RagContextPage(**hit)
            for hit in hits
            if hit["page_number"] != current_page and hit["similarity"] >= similarity_threshold
        ]
        pages.sort(key=lambda p: p.similarity, reverse=True)
        return pages[:max_pages]

    def build_context(
        self,
        book_id: str,
        current_page: int,
        query_text: str,
        strict_mode: bool = False,
    ) -> Tuple[str, RagMetadata]:
        """Context block for a page and the metadata describing it."""
        if not self.enabled or not query_text.strip():
            return "", RagMetadata()

        profile = profile_for(strict_mode)
        try:
            pages = self.retrieve(
                book_id,
                current_page,
                query_text,
                profile.max_pages,
                profile.similarity_threshold,
            )
        except Exception as e:
            logger.warning(f"Context retrieval failed for page {current_page}, continuing without it: {e}")
            return "", RagMetadata()

        context, included = format_context(pages, profile.max_context_chars)
        metadata = RagMetadata(
            pages_found=len(pages),
            pages_sent=len(included),
            context_chars=len(context),
            included_pages=included,
        )
        if pages:
            logger.info(
                f"RAG for page {current_page}: {metadata.pages_sent}/{metadata.pages_found} pages, "
                f"{metadata.context_chars} chars"
            )
        return context, metadata
