import logging
import math
from typing import List, Optional, Sequence, Union

import numpy as np

from .models import Cluster

logger = logging.getLogger(__name__)

MAX_CLUSTERS = 8

RandomSource = Union[None, int, np.random.Generator]


def choose_k(n: int, max_clusters: int = MAX_CLUSTERS) -> int:
    """``min(max_clusters, max(1, floor(sqrt(n))))``, never above ``n`` for positive ``n``."""
    if n <= 0:
        return 0
    return min(max_clusters, max(1, math.isqrt(n)))


class Clusterer:
    def __init__(self, n_clusters: Optional[int] = None, random_state: RandomSource = None,
                 max_iter: int = 50, max_clusters: int = MAX_CLUSTERS):
        """Lightweight KMeans implementation using NumPy only.

        Without ``random_state`` the initial centroids differ run to run.
        """
        self.n_clusters = n_clusters
        self.random_state = random_state
        self.max_iter = max_iter
        self.max_clusters = max_clusters

    def _init_centroids(self, X: np.ndarray, k: int) -> np.ndarray:
        rng = np.random.default_rng(self.random_state)
        idx = rng.choice(len(X), size=k, replace=False)
        return X[idx].astype(float)

    def _assign(self, X: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        # Squared distances preserve the Euclidean ordering
        dists = ((X[:, None, :] - centroids[None, :, :]) ** 2).sum(axis=2)
        return np.argmin(dists, axis=1)

    def _update(self, X: np.ndarray, labels: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        new_centroids = centroids.copy()
        for i in range(len(centroids)):
            mask = labels == i
            if np.any(mask):
                new_centroids[i] = X[mask].mean(axis=0)
            # empty clusters keep their previous centroid
        return new_centroids

    def fit(self, vectors: Sequence[Sequence[float]]) -> List[Cluster]:
        if len(vectors) == 0:
            return []

        X = np.asarray(vectors, dtype=float)
        n = len(X)
        k = self.n_clusters if self.n_clusters is not None else choose_k(n, self.max_clusters)
        k = max(1, min(k, n))

        if n <= k:
            return [Cluster(members=[i], centroid=X[i].tolist()) for i in range(n)]

        centroids = self._init_centroids(X, k)
        labels = self._assign(X, centroids)
        for iteration in range(self.max_iter):
            labels = self._assign(X, centroids)
            new_centroids = self._update(X, labels, centroids)
            moved = not np.array_equal(new_centroids, centroids)
            centroids = new_centroids
            if not moved:
                logger.debug("k-means converged after %d iterations (k=%d)", iteration + 1, k)
                break

        clusters = []
        for i in range(k):
            members = np.flatnonzero(labels == i).tolist()
            if members:
                clusters.append(Cluster(members=members, centroid=centroids[i].tolist()))
        logger.info("Clustered %d items into %d groups", n, len(clusters))
        return clusters
