"""
Subprompt selection for Ipê Mind Tree.

Subprompts are sphere-specific instructions added to the assistant prompt.
The one closest to the user's question is picked by cosine similarity of
hashed word-frequency vectors, falling back to keyword counting.
"""

import logging
import re
import time
import zlib
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import numpy as np
import yaml

from ..config import config
from ..database import DatabaseManager
from ..models import Subprompt


SEED_FILE = Path(__file__).resolve().parent.parent / "data" / "subprompts.yaml"
WORD_SPLIT = re.compile(r"\W+")


def generate_embedding(text: str, size: Optional[int] = None) -> List[float]:
    """
    Normalized word-frequency vector of a text.

    Words shorter than three characters are ignored; each remaining word adds
    its frequency to the bucket chosen by its CRC32 hash.
    """
    size = size or config.get("subprompts.embedding_size", 100)
    words = [w for w in WORD_SPLIT.split((text or "").lower()) if len(w) > 2]

    vector = np.zeros(size, dtype=float)
    for word, freq in Counter(words).items():
        vector[zlib.crc32(word.encode("utf-8")) % size] += freq

    norm = np.linalg.norm(vector)
    if norm > 0:
        vector = vector / norm
    return vector.tolist()


def cosine_similarity(a: List[float], b: List[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0
    return float(np.dot(va, vb) / denominator)


def _embedding_text(name: str, description: str, keywords: List[str]) -> str:
    return f"{name} {description} {' '.join(keywords)}"


class SubpromptService:
    """
    Stores subprompts and selects one per question.
    """

    def __init__(
        self,
        db: DatabaseManager,
        seed_file: Optional[Path] = None,
        clock: Callable[[], float] = time.time
    ):
        self.db = db
        self.seed_file = Path(seed_file) if seed_file else SEED_FILE
        self.clock = clock
        self._cache: Optional[List[Subprompt]] = None
        self._cache_updated_at = 0.0

    def initialize(self) -> int:
        """
        Load the seed file into the database, skipping names already present.

        Returns:
            Number of subprompts created
        """
        try:
            with open(self.seed_file, 'r', encoding='utf-8') as f:
                entries = yaml.safe_load(f) or []
        except (OSError, yaml.YAMLError) as e:
            logging.warning(f"Could not read subprompt seed file {self.seed_file}: {e}")
            return 0

        created = 0
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("name"):
                logging.warning(f"Skipping malformed subprompt seed entry: {entry!r}")
                continue
            if self.db.get_subprompt_by_name(entry["name"]):
                continue
            self.create_subprompt(
                name=entry["name"],
                description=entry.get("description", ""),
                keywords=[str(k).lower() for k in entry.get("keywords", [])],
                content=entry.get("content") or f"This is a default content for {entry['name']}",
                sphere=entry.get("sphere") or entry["name"].replace(" Sphere", ""),
                active=entry.get("active", True)
            )
            created += 1

        logging.info(f"Seeded {created} subprompts from {self.seed_file.name}")
        return created

    def create_subprompt(
        self,
        name: str,
        description: str,
        keywords: List[str],
        content: str,
        sphere: Optional[str] = None,
        active: bool = True
    ) -> Subprompt:
        subprompt = self.db.add_subprompt(Subprompt(
            name=name,
            description=description,
            keywords=keywords,
            content=content,
            sphere=sphere,
            active=active,
            embedding=generate_embedding(_embedding_text(name, description, keywords))
        ))
        self._cache = None
        return subprompt

    def update_subprompt(self, subprompt_id: int, **changes: Any) -> Optional[Subprompt]:
        """
        Change fields of a subprompt; the embedding is recomputed when the
        name, description or keywords change.
        """
        current = self.db.get_subprompt(subprompt_id)
        if current is None:
            return None

        updated = current.model_copy(update=changes)
        if {"name", "description", "keywords"} & set(changes):
            updated.embedding = generate_embedding(
                _embedding_text(updated.name, updated.description, updated.keywords)
            )

        result = self.db.update_subprompt(updated)
        self._cache = None
        return result

    def delete_subprompt(self, subprompt_id: int) -> bool:
        deleted = self.db.delete_subprompt(subprompt_id)
        self._cache = None
        return deleted

    def list_subprompts(self, active_only: bool = False) -> List[Subprompt]:
        return self.db.list_subprompts(active_only=active_only)

    def get_active_subprompts(self) -> List[Subprompt]:
        """Active subprompts, cached for the configured time."""
        ttl = config.get("subprompts.cache_ttl_seconds", 3600)
        now = self.clock()
        if self._cache is None or now - self._cache_updated_at > ttl:
            self._cache = self.db.list_subprompts(active_only=True)
            self._cache_updated_at = now
            logging.info(f"Subprompt cache updated with {len(self._cache)} active subprompts")
        return self._cache

    def select_subprompt_record(self, query: str) -> Optional[Subprompt]:
        """
        Pick the subprompt closest to a question.

        Cosine similarity above the threshold wins; otherwise the subprompt
        with the most keywords found in the question; otherwise None.
        """
        candidates = self.get_active_subprompts()
        if not candidates:
            logging.info("No subprompts available")
            return None

        threshold = config.get("subprompts.similarity_threshold", 0.5)
        query_embedding = generate_embedding(query)

        best, best_similarity = None, 0.0
        for subprompt in candidates:
            similarity = cosine_similarity(query_embedding, subprompt.embedding)
            if best is None or similarity > best_similarity:
                best, best_similarity = subprompt, similarity

        if best is not None and best_similarity > threshold:
            logging.info(f"Selected subprompt: {best.name} (similarity: {best_similarity:.2f})")
            return best

        lowered = (query or "").lower()
        counts: Dict[int, int] = {}
        for index, subprompt in enumerate(candidates):
            counts[index] = sum(1 for keyword in subprompt.keywords if keyword.lower() in lowered)
        best_index = max(counts, key=lambda i: counts[i])
        if counts[best_index] > 0:
            logging.info(f"Selected subprompt via keywords: {candidates[best_index].name}")
            return candidates[best_index]

        logging.info("No suitable subprompt found for the query")
        return None

    def select_subprompt(self, query: str) -> str:
        """Content of the selected subprompt, or an empty string."""
        subprompt = self.select_subprompt_record(query)
        return subprompt.content if subprompt else ""
