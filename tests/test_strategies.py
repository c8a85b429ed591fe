import numpy as np
import pytest

from lhssdp.strategies import (
    deterministic_strategies,
    num_strategies,
    strategy_digits,
    strategy_groups,
    strategy_index,
)


def test_two_outcomes_two_inputs_has_four_strategies():
    D = deterministic_strategies(2, 2)
    assert num_strategies(2, 2) == 4
    assert D.shape == (2, 2, 4)
    # every strategy answers exactly one outcome per input
    assert np.array_equal(D.sum(axis=0), np.ones((2, 4), dtype=int))


def test_digits_are_least_significant_first():
    assert strategy_digits(0, 2, 2).tolist() == [0, 0]
    assert strategy_digits(1, 2, 2).tolist() == [1, 0]
    assert strategy_digits(2, 2, 2).tolist() == [0, 1]
    assert strategy_digits(5, 3, 2).tolist() == [2, 1]


def test_strategy_table_matches_digits():
    oa, ma = 3, 2
    D = deterministic_strategies(oa, ma)
    for lam in range(num_strategies(oa, ma)):
        digits = strategy_digits(lam, oa, ma)
        assert strategy_index(digits, oa) == lam
        for x in range(ma):
            assert D[digits[x], x, lam] == 1
            assert D[:, x, lam].sum() == 1


def test_groups_partition_strategies_per_input():
    D = deterministic_strategies(3, 3)
    groups = strategy_groups(D)
    assert len(groups) == 9
    for x in range(3):
        members = sorted(lam for a in range(3) for lam in groups[(a, x)])
        assert members == list(range(27))
        assert all(len(groups[(a, x)]) == 9 for a in range(3))


def test_single_outcome_and_single_input_edges():
    assert deterministic_strategies(1, 4).shape == (1, 4, 1)
    assert np.all(deterministic_strategies(1, 4) == 1)
    D = deterministic_strategies(4, 1)
    assert np.array_equal(D[:, 0, :], np.eye(4, dtype=int))


def test_invalid_arguments():
    with pytest.raises(ValueError):
        num_strategies(0, 2)
    with pytest.raises(ValueError):
        strategy_digits(4, 2, 2)
    with pytest.raises(ValueError):
        strategy_digits(-1, 2, 2)
    with pytest.raises(ValueError):
        strategy_index([0, 2], 2)
    with pytest.raises(ValueError):
        strategy_groups(np.zeros((2, 2)))
