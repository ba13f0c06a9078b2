"""ChromaDB vector store of page texts, one collection per book."""
import re
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import chromadb
from chromadb.config import Settings
from sentence_transformers import SentenceTransformer

from utils.logger import setup_logger
import config

logger = setup_logger(__name__)

EmbedFn = Callable[[List[str]], List[List[float]]]


class VectorStore:
    """Manages ChromaDB operations for page embeddings."""

    def __init__(
        self,
        chroma_path: Path = config.CHROMA_PATH,
        embed_fn: Optional[EmbedFn] = None,
        client: Optional[Any] = None,
    ):
        """Initialize ChromaDB client and embedding model.

        Args:
            chroma_path: Path to ChromaDB persistence directory
            embed_fn: Embedding function; defaults to the configured SentenceTransformer
            client: Existing chromadb client, e.g. ``chromadb.EphemeralClient()``
        """
        self.chroma_path = chroma_path
        self.client = client or chromadb.PersistentClient(
            path=str(chroma_path),
            settings=Settings(anonymized_telemetry=False)
        )

        if embed_fn is None:
            logger.info(f"Loading embedding model: {config.EMBEDDING_MODEL}")
            model = SentenceTransformer(config.EMBEDDING_MODEL)
            embed_fn = lambda texts: model.encode(texts).tolist()
        self.embed_fn = embed_fn
        logger.info("Vector store initialized")

    def _get_collection_name(self, book_id: str) -> str:
        """Get collection name for a book.

        Args:
            book_id: Book identifier

        Returns:
            Collection name
        """
        # ChromaDB collection names allow [a-zA-Z0-9_-] only
        return "book_" + re.sub(r"[^A-Za-z0-9_-]", "_", book_id).strip("_-")[:56]

    def collection_exists(self, book_id: str) -> bool:
        """Check if a collection exists for a book."""
        names = [getattr(c, "name", c) for c in self.client.list_collections()]
        return self._get_collection_name(book_id) in names

    def index_page(
        self,
        book_id: str,
        page_number: int,
        text: str,
        title: str = "",
        min_chars: int = config.MIN_EMBEDDING_CHARS,
    ) -> bool:
        """Embed a page's text into the book's collection.

        Args:
            book_id: Book identifier
            page_number: Page number
            text: Page text to embed
            title: Optional page title stored as metadata
            min_chars: Texts shorter than this are not indexed

        Returns:
            True when the page was indexed
        """
        if len(text.strip()) < min_chars:
            logger.debug(f"Page {page_number} too short to index ({len(text.strip())} chars)")
            return False

        collection = self.client.get_or_create_collection(
            name=self._get_collection_name(book_id),
            metadata={"book_id": book_id, "hnsw:space": "cosine"}
        )
        embedding = self.embed_fn([text])[0]
        collection.upsert(
            ids=[f"page_{page_number}"],
            embeddings=[embedding],
            documents=[text],
            metadatas=[{"book_id": book_id, "page_number": page_number, "title": title}]
        )
        logger.info(f"Indexed page {page_number} of book {book_id}")
        return True

    def query(
        self,
        query_text: str,
        book_id: str,
        n_results: int = 5,
        exclude_page: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Query pages of one book by semantic similarity.

        Args:
            query_text: Query string
            book_id: Book identifier
            n_results: Number of results to return
            exclude_page: Page number left out of the results

        Returns:
            List of pages with ``page_number``, ``title``, ``content`` and
            ``similarity`` (1 - cosine distance), most similar first
        """
        if not self.collection_exists(book_id):
            logger.debug(f"No collection for book {book_id}")
            return []

        collection = self.client.get_collection(self._get_collection_name(book_id))
        count = collection.count()
        if count == 0:
            return []

        where = {"page_number": {"$ne": exclude_page}} if exclude_page is not None else None
        results = collection.query(
            query_embeddings=[self.embed_fn([query_text])[0]],
            n_results=min(n_results, count),
            where=where,
        )

        pages = []
        if results["ids"] and results["ids"][0]:
            for i in range(len(results["ids"][0])):
                metadata = results["metadatas"][0][i] or {}
                pages.append({
                    "page_number": int(metadata.get("page_number", 0)),
                    "title": metadata.get("title", ""),
                    "content": results["documents"][0][i],
                    "similarity": 1.0 - float(results["distances"][0][i]),
                })

        return sorted(pages, key=lambda p: p["similarity"], reverse=True)

    def delete_book(self, book_id: str) -> None:
        """Delete all embeddings for a book."""
        collection_name = self._get_collection_name(book_id)

        if not self.collection_exists(book_id):
            logger.warning(f"No collection to delete: {collection_name}")
            return
        self.client.delete_collection(collection_name)
        logger.info(f"Deleted collection: {collection_name}")
