"""
Tests for the MSSA adjacency graph and the BYM2 scaling factor.
"""

import numpy as np
import pytest

from camrsa.spatial.adjacency import (
    AdjacencyGraph,
    build_adjacency,
    connect_components,
    compute_scaling_factor,
)


class TestBuildAdjacency:
    """Tests for Queen contiguity on a 3x3 grid."""

    def test_queen_edge_count(self, grid_shapes):
        graph = build_adjacency(grid_shapes)
        # 6 horizontal + 6 vertical + 8 diagonal
        assert graph.n_areas == 9
        assert graph.n_edges == 20
        assert graph.n_added_links == 0

    def test_centre_has_eight_neighbours(self, grid_shapes):
        graph = build_adjacency(grid_shapes)
        counts = graph.neighbour_counts()
        assert counts[graph.area_ids.index('m4')] == 8
        assert counts[graph.area_ids.index('m0')] == 3

    def test_edges_are_ordered_and_one_based(self, grid_shapes):
        graph = build_adjacency(grid_shapes)
        assert (graph.node1 < graph.node2).all()
        assert graph.node1.min() >= 1
        assert graph.node2.max() <= graph.n_areas

    def test_island_linked_to_nearest_area(self, grid_with_island):
        graph = build_adjacency(grid_with_island)
        assert graph.n_added_links == 1
        assert graph.n_edges == 21

        i9 = graph.area_ids.index('m9') + 1
        i2 = graph.area_ids.index('m2') + 1
        pairs = set(zip(graph.node1.tolist(), graph.node2.tolist()))
        assert (min(i2, i9), max(i2, i9)) in pairs

    def test_input_order_does_not_matter(self, grid_shapes):
        shuffled = grid_shapes.iloc[::-1].reset_index(drop=True)
        a = build_adjacency(grid_shapes)
        b = build_adjacency(shuffled)
        assert a.area_ids == b.area_ids
        np.testing.assert_array_equal(a.node1, b.node1)
        np.testing.assert_array_equal(a.node2, b.node2)


class TestConnectComponents:
    """Tests for linking disconnected components."""

    def test_connected_graph_unchanged(self):
        edges = {(0, 1), (1, 2)}
        out, added = connect_components(edges, np.array([[0, 0], [1, 0], [2, 0]], dtype=float))
        assert out == edges
        assert added == 0

    def test_two_components(self):
        centroids = np.array([[0, 0], [1, 0], [2, 0], [10, 0], [11, 0]], dtype=float)
        out, added = connect_components({(0, 1), (1, 2), (3, 4)}, centroids)
        assert added == 1
        assert (2, 3) in out


class TestGraphHelpers:
    """Tests for AdjacencyGraph helpers."""

    def test_index_of(self):
        graph = AdjacencyGraph(['a', 'b', 'c'], np.array([1, 2]), np.array([2, 3]))
        np.testing.assert_array_equal(graph.index_of(['c', 'a', 'c']), [3, 1, 3])

    def test_index_of_unknown_raises(self):
        graph = AdjacencyGraph(['a', 'b'], np.array([1]), np.array([2]))
        with pytest.raises(KeyError):
            graph.index_of(['a', 'z'])

    def test_sparse_is_symmetric(self, grid_shapes):
        mat = build_adjacency(grid_shapes).to_sparse()
        assert (mat != mat.T).nnz == 0
        assert mat.sum() == 40


class TestScalingFactor:
    """Tests for the BYM2 scaling factor."""

    def test_two_nodes(self):
        graph = AdjacencyGraph(['a', 'b'], np.array([1]), np.array([2]))
        assert compute_scaling_factor(graph) == pytest.approx(0.25, rel=1e-4)

    def test_grid_positive(self, grid_shapes):
        sf = compute_scaling_factor(build_adjacency(grid_shapes))
        assert 0 < sf < 1

    def test_path_is_larger_than_grid(self, grid_shapes):
        # sparser graphs have larger marginal variances
        path = AdjacencyGraph([f"a{k}" for k in range(9)], np.arange(1, 9), np.arange(2, 10))
        assert compute_scaling_factor(path) > compute_scaling_factor(build_adjacency(grid_shapes))

    def test_no_edges_raises(self):
        graph = AdjacencyGraph(['a', 'b'], np.array([], dtype=int), np.array([], dtype=int))
        with pytest.raises(ValueError):
            compute_scaling_factor(graph)
