"""FAISS vector store for policy text retrieval."""

import asyncio
import os
import json
import logging
from typing import List, Dict, Any, Optional
import numpy as np
import faiss

from ..utils.errors import VectorStoreError

logger = logging.getLogger(__name__)


class PolicyVectorStore:
    """
    FAISS-based vector store for similarity search over policy chunks.

    The index is produced by the policy ingestion job and read here:
    an inner-product index over L2-normalized embeddings plus a JSON list
    of per-vector metadata (``id``, ``text``, ``source`` and any tenant tags).

    Provides methods for:
    - Loading the index once, shared across concurrent jobs
    - Similarity search with exact-match metadata filters
    """

    def __init__(
        self,
        index_path: str,
        metadata_path: str,
        dimension: int = 1024
    ):
        """
        Initialize PolicyVectorStore.

        Args:
            index_path: Path to the FAISS index file
            metadata_path: Path to the metadata JSON file
            dimension: Embedding vector dimension (1024 for Titan v2)
        """
        self.index_path = index_path
        self.metadata_path = metadata_path
        self.dimension = dimension

        self.index: Optional[faiss.Index] = None
        self.metadata: List[Dict[str, Any]] = []
        self._load_lock = asyncio.Lock()

        logger.info(
            f"Initialized PolicyVectorStore: "
            f"index_path={index_path}, dimension={dimension}"
        )

    async def ensure_loaded(self) -> None:
        """
        Load the index on first use; concurrent callers wait for one load.

        Raises:
            VectorStoreError: If the index files do not exist
        """
        if self.index is not None:
            return

        async with self._load_lock:
            if self.index is not None:
                return
            loaded = await asyncio.to_thread(self.load_index)
            if not loaded:
                raise VectorStoreError.index_not_found(self.index_path)

    def load_index(self) -> bool:
        """
        Load existing FAISS index from disk.

        Returns:
            True if index loaded successfully, False if files don't exist

        Raises:
            RuntimeError: If index files exist but loading fails
        """
        if not os.path.exists(self.index_path):
            logger.warning(f"Index file not found: {self.index_path}")
            return False

        if not os.path.exists(self.metadata_path):
            logger.warning(f"Metadata file not found: {self.metadata_path}")
            return False

        try:
            logger.info(f"Loading FAISS index from {self.index_path}")

            index = faiss.read_index(self.index_path)

            with open(self.metadata_path, 'r', encoding='utf-8') as f:
                metadata = json.load(f)

            if index.ntotal != len(metadata):
                raise RuntimeError(
                    f"Index/metadata mismatch: index has {index.ntotal} vectors "
                    f"but metadata has {len(metadata)} entries"
                )

            self.metadata = metadata
            self.index = index

            logger.info(
                f"Loaded FAISS index: total_vectors={self.index.ntotal}, "
                f"metadata_entries={len(self.metadata)}"
            )

            return True

        except Exception as e:
            logger.error(f"Failed to load FAISS index: {str(e)}")
            raise RuntimeError(f"Index loading failed: {str(e)}") from e

    def search(
        self,
        query_embedding: np.ndarray,
        top_k: int = 5,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Search for relevant policy chunks using semantic similarity.

        Args:
            query_embedding: Query embedding vector
            top_k: Number of top results to return
            filters: Metadata key/value pairs that must all match exactly

        Returns:
            List of metadata dicts, each with an added 'score', best first

        Raises:
            RuntimeError: If index is not loaded
        """
        if self.index is None:
            raise RuntimeError("Index not loaded. Call load_index() or ensure_loaded() first.")

        if top_k <= 0 or self.index.ntotal == 0:
            return []

        if len(query_embedding.shape) == 1:
            query_embedding = query_embedding.reshape(1, -1)

        # Normalize query vector for cosine similarity
        query_embedding = np.ascontiguousarray(query_embedding, dtype=np.float32)
        faiss.normalize_L2(query_embedding)

        # Filtered searches rank the whole index so matches are never cut off early
        search_k = self.index.ntotal if filters else min(top_k, self.index.ntotal)
        distances, indices = self.index.search(query_embedding, search_k)

        results = []
        for idx, dist in zip(indices[0], distances[0]):
            if idx < 0 or idx >= len(self.metadata):
                continue

            entry = self.metadata[idx]
            if filters and not self._matches(entry, filters):
                continue

            result = dict(entry)
            result['score'] = float(dist)
            results.append(result)

            if len(results) >= top_k:
                break

        logger.debug(
            f"Search completed: filters={filters}, "
            f"top_k={top_k}, results={len(results)}"
        )

        return results

    @staticmethod
    def _matches(entry: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        return all(entry.get(key) == value for key, value in filters.items())

    def is_loaded(self) -> bool:
        """
        Check if index is loaded and ready for search.

        Returns:
            True if index is loaded, False otherwise
        """
        return self.index is not None

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the loaded index.

        Returns:
            Dict with index statistics
        """
        if not self.is_loaded():
            return {
                'loaded': False,
                'total_vectors': 0,
                'metadata_entries': 0
            }

        sources: Dict[str, int] = {}
        for meta in self.metadata:
            source = meta.get('source', 'unknown')
            sources[source] = sources.get(source, 0) + 1

        return {
            'loaded': True,
            'total_vectors': self.index.ntotal,
            'metadata_entries': len(self.metadata),
            'dimension': self.dimension,
            'sources': sources,
            'index_path': self.index_path,
            'metadata_path': self.metadata_path
        }
