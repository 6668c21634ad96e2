"""
Lloyd's k-means over 2D points (age, total spending), raw units.

Seeding: k-means++ drawn with numpy.random.default_rng(random_state). Points
already chosen as centroids have zero squared distance, so they are never drawn
again; with at least k distinct points the initial centroids are distinct.

Assignment: squared Euclidean distance, ties go to the lowest cluster index.
Empty cluster: re-seeded from the point farthest from its current centroid.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from retail_dashboard.domain.config import check_cluster_count
from retail_dashboard.domain.errors import ComputationFailure, InsufficientData, InvalidParameter
from retail_dashboard.domain.models import KMeansResult
from retail_dashboard.utilities.log import get_logger

log = get_logger(__name__)

DEFAULT_MAX_ITER = 100


def _as_points(points) -> np.ndarray:
    X = np.asarray(points, dtype=float)
    if X.ndim != 2 or X.shape[1] != 2:
        raise InvalidParameter(f"Expected points of shape (n, 2), got {X.shape}")
    if not np.isfinite(X).all():
        raise ComputationFailure("Points contain NaN or infinite coordinates")
    return X


def _sq_distances(X: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    # (n, k) matrix of squared distances
    diff = X[:, None, :] - centroids[None, :, :]
    return np.einsum("nkd,nkd->nk", diff, diff)


def kmeans_plus_plus(X: np.ndarray, k: int, rng: np.random.Generator) -> np.ndarray:
    """Pick k initial centroids among the distinct rows of X."""
    distinct = np.unique(X, axis=0)
    first = int(rng.integers(len(distinct)))
    centroids = [distinct[first]]

    closest = ((distinct - centroids[0]) ** 2).sum(axis=1)
    for _ in range(1, k):
        total = closest.sum()
        if total <= 0.0:
            # fewer distinct points than k; guarded by the caller
            raise InsufficientData("Not enough distinct points to seed k centroids")
        idx = int(rng.choice(len(distinct), p=closest / total))
        centroids.append(distinct[idx])
        closest = np.minimum(closest, ((distinct - distinct[idx]) ** 2).sum(axis=1))

    return np.vstack(centroids)


def kmeans(
    points,
    k: int,
    *,
    max_iter: int = DEFAULT_MAX_ITER,
    random_state: Optional[int] = 42,
    init: Optional[np.ndarray] = None,
) -> KMeansResult:
    """
    Cluster `points` (n x 2) into k groups.

    `init` overrides the k-means++ seeding with explicit starting centroids.
    Raises InvalidParameter for k <= 0 and InsufficientData when there are
    fewer distinct points than k.
    """
    k = check_cluster_count(k)
    if max_iter < 1:
        raise InvalidParameter(f"max_iter must be >= 1, got {max_iter}")

    X = _as_points(points)
    n_distinct = len(np.unique(X, axis=0)) if len(X) else 0
    if k > n_distinct:
        raise InsufficientData(
            f"Invalid cluster count: k={k} but only {n_distinct} distinct points are available"
        )

    if init is not None:
        centroids = np.array(init, dtype=float)
        if centroids.shape != (k, 2):
            raise InvalidParameter(f"init must have shape ({k}, 2), got {centroids.shape}")

    labels = np.full(len(X), -1, dtype=int)
    converged = False
    n_iter = 0

    with np.errstate(over="raise", invalid="raise"):
        try:
            if init is None:
                centroids = kmeans_plus_plus(X, k, np.random.default_rng(random_state))

            for n_iter in range(1, max_iter + 1):
                dist = _sq_distances(X, centroids)
                new_labels = np.argmin(dist, axis=1)  # first minimum = lowest index

                if np.array_equal(new_labels, labels):
                    converged = True
                    break
                labels = new_labels

                for c in range(k):
                    members = labels == c
                    if members.any():
                        centroids[c] = X[members].mean(axis=0)
                        continue

                    # empty cluster: steal the point farthest from its own centroid
                    own = dist[np.arange(len(X)), labels]
                    far = int(np.argmax(own))
                    log.debug("k-means: cluster %d empty at iter %d, re-seeded from point %d", c, n_iter, far)
                    centroids[c] = X[far]
                    labels[far] = c
                    dist[far, :] = 0.0
        except FloatingPointError as exc:
            raise ComputationFailure(f"Numeric overflow during k-means: {exc}") from exc

    inertia = float(((X - centroids[labels]) ** 2).sum())
    if not converged:
        log.warning("k-means did not converge within %d iterations (k=%d, n=%d)", max_iter, k, len(X))

    return KMeansResult(
        labels=tuple(int(v) for v in labels),
        centroids=tuple((float(c[0]), float(c[1])) for c in centroids),
        n_iter=n_iter,
        converged=converged,
        inertia=inertia,
    )
