"""Tests for row-band domain decomposition logic."""

import pytest
from Laplace import ConfigurationError, RowDecomposition, split_rows


class TestRowPartitions:
    """Tests for partition sizes and offsets."""

    @pytest.mark.parametrize("R,size", [(1, 1), (10, 4), (100, 7), (7, 7), (1000, 3), (50, 1)])
    def test_full_coverage_no_overlaps(self, R, size):
        """Each global row owned by exactly one rank."""
        decomp = RowDecomposition(global_rows=R, size=size)

        expected_start = 0
        for info in decomp.get_all_rank_info():
            assert info.global_start_row == expected_start  # no gap, no overlap
            assert info.local_rows >= 1
            expected_start = info.global_end_row
        assert expected_start == R

    def test_exhaustive_small_sizes(self):
        """Tiling holds for every R, P with P <= R up to 30 rows."""
        for R in range(1, 31):
            for size in range(1, R + 1):
                owned = []
                for info in RowDecomposition(R, size).get_all_rank_info():
                    owned.extend(range(info.global_start_row, info.global_end_row))
                assert owned == list(range(R))

    def test_extra_rows_go_to_first_ranks(self):
        """The first R mod P ranks get one extra row."""
        decomp = RowDecomposition(global_rows=10, size=4)
        sizes = [decomp.get_rank_info(r).local_rows for r in range(4)]
        assert sizes == [3, 3, 2, 2]

    def test_split_rows_offsets(self):
        """Offsets follow the extra-rows-first formula."""
        assert split_rows(10, 4, 0) == (3, 0)
        assert split_rows(10, 4, 1) == (3, 3)
        assert split_rows(10, 4, 2) == (2, 6)
        assert split_rows(10, 4, 3) == (2, 8)

    def test_single_rank(self):
        """Single rank gets the entire domain."""
        info = RowDecomposition(global_rows=50, size=1).get_rank_info(0)

        assert info.local_rows == 50
        assert info.global_start_row == 0
        assert info.n_neighbors == 0


class TestNeighbors:
    """Tests for linear and ring neighbour rules."""

    def test_linear_neighbors(self):
        """Interior ranks have 2 neighbors, edge ranks have 1."""
        decomp = RowDecomposition(global_rows=50, size=4, topology="linear")

        assert decomp.get_neighbors(0) == {"above": None, "below": 1}
        assert decomp.get_neighbors(1) == {"above": 0, "below": 2}
        assert decomp.get_neighbors(3) == {"above": 2, "below": None}

    def test_ring_wraps(self):
        """First and last rank are neighbours in a ring."""
        decomp = RowDecomposition(global_rows=50, size=4, topology="ring")

        assert decomp.get_neighbors(0) == {"above": 3, "below": 1}
        assert decomp.get_neighbors(3) == {"above": 2, "below": 0}

    @pytest.mark.parametrize("size,expected", [(1, {"above": 0, "below": 0}), (2, {"above": 1, "below": 1})])
    def test_degenerate_rings(self, size, expected):
        """With one or two ranks both neighbours are the same process."""
        decomp = RowDecomposition(global_rows=10, size=size, topology="ring")
        assert decomp.get_neighbors(0) == expected

    def test_neighbor_reciprocity(self):
        """If A is above B, then B is below A."""
        for topology in ("linear", "ring"):
            decomp = RowDecomposition(global_rows=30, size=5, topology=topology)
            for info in decomp.get_all_rank_info():
                above = info.neighbors["above"]
                if above is not None:
                    assert decomp.get_neighbors(above)["below"] == info.rank


class TestEdgeCases:
    """Edge cases and error handling."""

    def test_more_ranks_than_rows(self):
        """P > R would leave a rank empty."""
        with pytest.raises(ConfigurationError):
            RowDecomposition(global_rows=3, size=4)

    @pytest.mark.parametrize("R,size", [(0, 1), (10, 0), (-5, 2)])
    def test_non_positive_sizes(self, R, size):
        with pytest.raises(ConfigurationError):
            RowDecomposition(global_rows=R, size=size)

    def test_invalid_topology(self):
        """Unknown topology raises ConfigurationError (a ValueError)."""
        with pytest.raises(ValueError):
            RowDecomposition(global_rows=50, size=4, topology="torus")

    def test_rank_out_of_range(self):
        decomp = RowDecomposition(global_rows=50, size=4)
        with pytest.raises(ConfigurationError):
            decomp.get_rank_info(4)
