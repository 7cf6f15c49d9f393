import numpy as np
import pytest

from pycircperm.hypothesis import (
    common_median_test,
    kuiper_statistic,
    kuiper_two_sample_test,
    rayleigh_test,
)
from pycircperm.utils import LowResolutionWarning, SmallSampleWarning


def clustered(center_deg, n, kappa=50.0, seed=0):
    rng = np.random.default_rng(seed)
    return np.mod(rng.vonmises(np.deg2rad(center_deg) - np.pi, kappa, size=n) + np.pi, 2 * np.pi)


def test_rayleigh_test():

    # Ch27 Example 1 (Zar, 2010, P667)
    result = rayleigh_test(n=8, r=0.82522)
    np.testing.assert_approx_equal(result.z, 5.448, significant=3)
    assert 0.001 < result.pval < 0.002

    # computed directly from alpha
    alpha = clustered(10, 100)
    result = rayleigh_test(alpha=alpha)
    assert result.n == 100
    assert result.pval < 1e-10


def test_rayleigh_test_uniform():
    result = rayleigh_test(alpha=np.deg2rad([0, 90, 180, 270]))
    assert result.r < 1e-12
    assert result.pval > 0.9


def test_rayleigh_test_empty():
    result = rayleigh_test(alpha=np.array([]))
    assert result.n == 0
    assert np.isnan(result.pval)

    result = rayleigh_test(n=0)
    assert np.isnan(result.pval)

    with pytest.raises(ValueError):
        rayleigh_test()
    with pytest.raises(ValueError):
        rayleigh_test(r=1.2, n=10)


def test_common_median_test_identical_groups():
    group = clustered(45, 30, kappa=5.0, seed=1)
    result = common_median_test([group, group.copy(), group.copy()])

    assert result.applicable
    assert result.df == 2
    assert result.pval > 0.99
    assert not result.reject


def test_common_median_test_different_medians():
    g1 = np.deg2rad(np.linspace(-20, 20, 30))
    g2 = np.deg2rad(np.linspace(40, 80, 30))
    result = common_median_test([g1, g2])

    np.testing.assert_allclose(np.rad2deg(result.common_median), 30.0)
    np.testing.assert_allclose(result.statistic, 60.0)
    assert result.pval < 1e-6
    assert result.reject


def test_common_median_test_not_applicable():
    result = common_median_test([np.deg2rad([10, 20, 30]), np.array([])])
    assert not result.applicable
    assert result.reason == "fewer than two groups with observations"
    assert np.isnan(result.pval)

    # every angle equals the median: nothing lies below it
    with pytest.warns(SmallSampleWarning):
        result = common_median_test([np.array([1.0, 1.0]), np.array([1.0, 1.0, 1.0])])
    assert not result.applicable
    np.testing.assert_allclose(result.common_median, 1.0)


def test_common_median_test_unequal_sizes():
    g1 = clustered(30, 300, kappa=4.0, seed=2)
    g2 = np.array([np.deg2rad(200)])

    with pytest.warns(SmallSampleWarning):
        result = common_median_test([g1, g2])

    assert result.applicable
    assert result.n_groups == 2
    assert np.isfinite(result.statistic)
    assert 0 <= result.pval <= 1


def test_common_median_test_invalid():
    with pytest.raises(ValueError):
        common_median_test("invalid_input")
    with pytest.raises(ValueError):
        common_median_test([np.array([0.1]), np.array([0.2])], alpha=2)


def test_kuiper_statistic():
    # fully separated samples
    assert kuiper_statistic([0.1, 0.2], [0.3, 0.4]) == 1.0

    # identical multisets
    a = clustered(100, 40, kappa=2.0)
    assert kuiper_statistic(a, a.copy()) == 0.0

    with pytest.raises(ValueError):
        kuiper_statistic([], [0.1])


def test_kuiper_statistic_symmetry():
    rng = np.random.default_rng(7)
    a = rng.uniform(0, 2 * np.pi, 60)
    b = rng.vonmises(1.0, 1.0, 45)

    np.testing.assert_allclose(kuiper_statistic(a, b), kuiper_statistic(b, a))


def test_kuiper_statistic_rotation():
    rng = np.random.default_rng(8)
    a = rng.uniform(0, 2 * np.pi, 50)
    b = np.mod(rng.vonmises(2.0, 2.0, 70), 2 * np.pi)
    V = kuiper_statistic(a, b)

    # rotating both samples together leaves V unchanged
    for shift in [0.3, 2.0, 4.5]:
        rotated = kuiper_statistic(np.mod(a + shift, 2 * np.pi), np.mod(b + shift, 2 * np.pi))
        np.testing.assert_allclose(rotated, V, atol=1e-12)

    # rotating only one sample changes it
    a = np.deg2rad(np.linspace(0, 20, 21))
    assert kuiper_statistic(a, a.copy()) == 0.0
    assert kuiper_statistic(a, a + np.deg2rad(90)) > 0.5


def test_kuiper_two_sample_test_identical():
    a = clustered(60, 80, kappa=3.0)
    result = kuiper_two_sample_test(a, a.copy(), n_simulation=300, seed=1)

    assert result.V == 0.0
    assert result.count == 300
    assert result.pval == 1.0
    assert not result.pval_is_bound


def test_kuiper_two_sample_test_separated():
    a = clustered(10, 100, seed=3)
    b = clustered(190, 100, seed=4)
    result = kuiper_two_sample_test(a, b, n_simulation=1000, seed=0)

    assert result.V > 0.99
    assert result.count == 0
    assert result.pval == 0.0
    assert result.pval_is_bound
    assert result.pval_bound == 1 / 1000
    assert result.effective_pval == 1 / 1000

    result = kuiper_two_sample_test(a, b, n_simulation=1000, seed=0, continuity=True)
    assert result.pval == 1 / 1001
    assert not result.pval_is_bound
    assert result.effective_pval == 1 / 1001


def test_kuiper_two_sample_test_reproducible():
    a = clustered(0, 120, kappa=2.0, seed=5)
    b = clustered(15, 90, kappa=2.0, seed=6)

    r1 = kuiper_two_sample_test(a, b, n_simulation=1000, seed=42, batch_size=100)
    r2 = kuiper_two_sample_test(a, b, n_simulation=1000, seed=42, batch_size=100)
    r3 = kuiper_two_sample_test(a, b, n_simulation=1000, seed=42, batch_size=100, n_jobs=4)

    assert r1.count == r2.count == r3.count
    assert r1.pval == r3.pval

    # batch sizes that do not divide n_simulation
    r4 = kuiper_two_sample_test(a, b, n_simulation=1001, seed=42, batch_size=250)
    assert r4.n_simulation == 1001
    assert 0 <= r4.count <= 1001


def test_kuiper_two_sample_test_symmetric():
    a = clustered(0, 150, kappa=1.0, seed=9)
    b = clustered(20, 130, kappa=1.0, seed=10)

    ab = kuiper_two_sample_test(a, b, n_simulation=2000, seed=3)
    ba = kuiper_two_sample_test(b, a, n_simulation=2000, seed=3)

    np.testing.assert_allclose(ab.V, ba.V)
    # Monte-Carlo noise only
    assert abs(ab.pval - ba.pval) < 0.1


def test_kuiper_two_sample_test_null():
    rng = np.random.default_rng(12)
    pooled = rng.uniform(0, 2 * np.pi, 400)
    result = kuiper_two_sample_test(pooled[:200], pooled[200:], n_simulation=500, seed=2)

    assert result.n1 == result.n2 == 200
    assert 0 < result.pval <= 1


def test_kuiper_two_sample_test_warnings_and_errors():
    a = clustered(0, 20, seed=1)
    b = clustered(90, 20, seed=2)

    with pytest.warns(LowResolutionWarning):
        kuiper_two_sample_test(a, b, n_simulation=50, seed=0)

    with pytest.raises(ValueError):
        kuiper_two_sample_test(a, np.array([]))
    with pytest.raises(ValueError):
        kuiper_two_sample_test(a, b, n_simulation=0)
    with pytest.raises(ValueError):
        kuiper_two_sample_test(a, np.array([np.nan]))


def test_common_median_test_order_invariant():
    rng = np.random.default_rng(4)
    samples = [rng.vonmises(0.5, 1.0, size=n) for n in (25, 30, 41)]
    expected = common_median_test(samples)

    for _ in range(10):
        result = common_median_test([rng.permutation(s) for s in samples])
        assert result.common_median == expected.common_median
        assert result.statistic == expected.statistic
        assert result.pval == expected.pval


def test_common_median_test_observation_on_median():
    # 30° is the pooled median and an observation; it counts on neither side
    g1 = np.deg2rad([10, 20, 30])
    g2 = np.deg2rad([30, 40, 50])
    with pytest.warns(SmallSampleWarning):
        result = common_median_test([g1, g2])

    np.testing.assert_allclose(np.rad2deg(result.common_median), 30.0)
    # m = (2, 0) below the median, N = 6, M = 2
    np.testing.assert_allclose(result.statistic, 3.0)
