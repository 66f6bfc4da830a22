import logging
import numpy as np
from typing import List, Optional, Sequence

from presence_api.models.face_reference import EMBEDDING_SIZE

logger = logging.getLogger(__name__)

# face-api.js style 128-d descriptors: same person typically < 0.6
MIN_DISTANCE_THRESHOLD = 0.55
MAX_DISTANCE_THRESHOLD = 0.60


class FaceEngine:
    """
    Compares a client-computed face embedding with a stored reference.

    No detection happens here: the capture device locates the face and sends
    the 128-d descriptor; this side only measures distance.
    """

    def __init__(self, threshold: float = MIN_DISTANCE_THRESHOLD, size: int = EMBEDDING_SIZE):
        if not (MIN_DISTANCE_THRESHOLD <= threshold <= MAX_DISTANCE_THRESHOLD):
            raise ValueError(
                f"face distance threshold must be within "
                f"{MIN_DISTANCE_THRESHOLD}..{MAX_DISTANCE_THRESHOLD}, got {threshold}"
            )
        self.threshold = threshold
        self.size = size

    def coerce(self, embedding) -> Optional[List[float]]:
        """
        Returns the embedding as a list of floats, or None if it is not a
        flat numeric vector of the expected length.
        """
        if not isinstance(embedding, (list, tuple)) or len(embedding) != self.size:
            return None
        try:
            arr = np.asarray(embedding, dtype=float)
        except (TypeError, ValueError):
            return None
        if arr.ndim != 1 or not np.all(np.isfinite(arr)):
            return None
        return arr.tolist()

    @staticmethod
    def compute_distance(emb1: Sequence[float], emb2: Sequence[float]) -> float:
        """
        Euclidean distance between two embeddings. Mismatched shapes count as
        infinitely far apart.
        """
        a = np.asarray(emb1, dtype=float)
        b = np.asarray(emb2, dtype=float)
        if a.shape != b.shape:
            logger.warning("embedding shape mismatch: %s vs %s", a.shape, b.shape)
            return float("inf")
        return float(np.linalg.norm(a - b))

    def matches(self, sample: Sequence[float], reference: Sequence[float]):
        """Returns (is_match, distance)."""
        dist = self.compute_distance(sample, reference)
        return dist <= self.threshold, dist
