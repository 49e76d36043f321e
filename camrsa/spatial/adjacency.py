"""
MSSA adjacency graph for the BYM2 spatial random effect.

Builds a Queen contiguity graph over MSSA polygons with libpysal and turns
it into the edge-list form used by the ICAR prior in Stan
(node1[i] < node2[i], 1-based area indices).

The ICAR component needs a connected graph for a single sum-to-zero
constraint and a single scaling factor. MSSAs on islands (Channel Islands)
and disconnected groups are therefore linked to their nearest area by
centroid distance until the graph is connected.
"""
import numpy as np
import geopandas as gpd
from dataclasses import dataclass
from typing import Iterable, List, Set, Tuple
from libpysal.weights import Queen
from scipy import sparse
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree


@dataclass
class AdjacencyGraph:
    """Undirected area graph in ICAR edge-list form."""
    area_ids: List[str]
    node1: np.ndarray
    node2: np.ndarray
    n_added_links: int = 0

    @property
    def n_areas(self) -> int:
        return len(self.area_ids)

    @property
    def n_edges(self) -> int:
        return len(self.node1)

    def to_sparse(self) -> sparse.csr_matrix:
        """Symmetric 0/1 adjacency matrix (areas in `area_ids` order)."""
        i = np.asarray(self.node1, dtype=int) - 1
        j = np.asarray(self.node2, dtype=int) - 1
        data = np.ones(len(i) * 2)
        mat = sparse.coo_matrix(
            (data, (np.concatenate([i, j]), np.concatenate([j, i]))),
            shape=(self.n_areas, self.n_areas)
        )
        return mat.tocsr()

    def neighbour_counts(self) -> np.ndarray:
        """Number of neighbours of each area."""
        return np.asarray(self.to_sparse().sum(axis=1)).ravel().astype(int)

    def index_of(self, ids: Iterable[str]) -> np.ndarray:
        """1-based area indices for MSSA ids."""
        lookup = {a: k + 1 for k, a in enumerate(self.area_ids)}
        ids = list(ids)
        unknown = sorted({str(a) for a in ids if a not in lookup})
        if unknown:
            raise KeyError(f"MSSAs not in adjacency graph: {unknown[:10]}")
        return np.array([lookup[a] for a in ids], dtype=int)


def _edges_to_matrix(n: int, edges: Set[Tuple[int, int]]) -> sparse.csr_matrix:
    if not edges:
        return sparse.csr_matrix((n, n))
    i, j = zip(*edges)
    mat = sparse.coo_matrix(
        (np.ones(len(i) * 2), (list(i) + list(j), list(j) + list(i))), shape=(n, n)
    )
    return mat.tocsr()


def connect_components(
    edges: Set[Tuple[int, int]],
    centroids: np.ndarray
) -> Tuple[Set[Tuple[int, int]], int]:
    """
    Link every component other than the largest to its nearest area in
    the largest component.

    Args:
        edges: Set of (i, j) pairs with i < j (0-based)
        centroids: (n, 2) array of area centroid coordinates

    Returns:
        (connected edge set, number of links added)
    """
    n = len(centroids)
    edges = set(edges)
    n_comp, labels = connected_components(_edges_to_matrix(n, edges), directed=False)
    if n_comp <= 1:
        return edges, 0

    main = int(np.argmax(np.bincount(labels)))
    main_idx = np.where(labels == main)[0]
    tree = cKDTree(centroids[main_idx])

    added = 0
    for comp in range(n_comp):
        if comp == main:
            continue
        members = np.where(labels == comp)[0]
        dist, nearest = tree.query(centroids[members])
        k = int(np.argmin(dist))
        a, b = int(members[k]), int(main_idx[nearest[k]])
        edges.add((min(a, b), max(a, b)))
        added += 1

    return edges, added


def build_adjacency(shapes: gpd.GeoDataFrame, id_col: str = 'mssa_id') -> AdjacencyGraph:
    """
    Build a connected Queen-contiguity graph from MSSA polygons.

    Args:
        shapes: MSSA polygons, preferably in a projected CRS
        id_col: Area identifier column

    Returns:
        AdjacencyGraph with areas ordered by `id_col`
    """
    gdf = shapes.sort_values(id_col).set_index(id_col)
    if gdf.index.has_duplicates:
        raise ValueError(f"Duplicate {id_col} values in shapes")

    w = Queen.from_dataframe(gdf, use_index=True, silence_warnings=True)

    area_ids = [str(a) for a in gdf.index]
    pos = {a: k for k, a in enumerate(gdf.index)}
    edges: Set[Tuple[int, int]] = set()
    for a, nbrs in w.neighbors.items():
        for b in nbrs:
            i, j = pos[a], pos[b]
            if i != j:
                edges.add((min(i, j), max(i, j)))

    centroids = np.column_stack([gdf.geometry.centroid.x, gdf.geometry.centroid.y])
    edges, n_added = connect_components(edges, centroids)

    if w.islands:
        print(f"  → {len(w.islands)} island MSSAs linked to nearest neighbour")
    if n_added:
        print(f"  → {n_added} links added to connect the graph")

    ordered = sorted(edges)
    node1 = np.array([e[0] + 1 for e in ordered], dtype=int)
    node2 = np.array([e[1] + 1 for e in ordered], dtype=int)
    return AdjacencyGraph(area_ids=area_ids, node1=node1, node2=node2, n_added_links=n_added)


def compute_scaling_factor(graph: AdjacencyGraph) -> float:
    """
    BYM2 scaling factor of the ICAR precision matrix.

    Geometric mean of the marginal variances of the sum-to-zero constrained
    generalized inverse of Q = D - W, so that the structured effect has
    unit generalized variance (Riebler et al. 2016).
    """
    n = graph.n_areas
    if n < 2 or graph.n_edges == 0:
        raise ValueError("Scaling factor needs at least two connected areas")

    adj = graph.to_sparse().toarray()
    Q = np.diag(adj.sum(axis=1)) - adj
    Q_pert = Q + np.eye(n) * Q.diagonal().max() * np.sqrt(np.finfo(float).eps)
    Q_inv = np.linalg.inv(Q_pert)

    # Condition on sum-to-zero
    ones = np.ones((n, 1))
    W = Q_inv @ ones
    Q_inv_c = Q_inv - W @ np.linalg.inv(ones.T @ W) @ W.T

    return float(np.exp(np.mean(np.log(np.diag(Q_inv_c)))))
