"""
Probability distributions used by rate categories.

Stationary and quasi-stationary root distributions of a rate matrix, and
the discretised Gamma distribution used for rate variation across sites.
"""

from functools import lru_cache

import numpy as np
from scipy.stats import gamma

from ..core.matrix import matrix_exponential
from ..exceptions import ParameterException, RateException
from ..settings import DistributionMethod

_CONVERGENCE = 1e-10
_MAX_STATIONARY_REPS = 2_000_000
_MAX_QSTAT_REPS = 20_000_000


def stationary(Q: np.ndarray, method: DistributionMethod = DistributionMethod.EIGEN) -> np.ndarray:
    """
    Stationary distribution of rate matrix Q.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Rate matrix with rows summing to zero
    method : DistributionMethod
        EIGEN uses the eigenvector of Q^T with the largest eigenvalue;
        REPEAT applies exp(Q / max(Q)) to a uniform start distribution
        until every state changes by a relative amount below 1e-10

    Returns
    -------
    ndarray, shape (n,)
        Distribution summing to one

    Raises
    ------
    RateException
        If the calculation fails to converge
    """
    if DistributionMethod(method) == DistributionMethod.EIGEN:
        return _eigen_distribution(Q, rank=0)

    largest = float(np.max(Q))
    P = matrix_exponential(Q / largest, 1.0)
    n = Q.shape[0]
    current = np.full(n, 1.0 / n)
    for _ in range(_MAX_STATIONARY_REPS):
        updated = current @ P
        if _converged(current, updated):
            return updated
        current = updated
    raise RateException("Cannot calculate stationary distribution - no convergence")


def quasi_stationary(Q: np.ndarray, method: DistributionMethod = DistributionMethod.EIGEN) -> np.ndarray:
    """
    Quasi-stationary distribution of a rate matrix whose state 0 is a sink.

    The distribution conditions on not having been absorbed into state 0,
    so its first entry is zero and the remainder sums to one.

    Parameters
    ----------
    Q : ndarray, shape (n, n)
        Rate matrix with an absorbing state at index 0
    method : DistributionMethod
        EIGEN uses the eigenvector of Q^T with the second largest
        eigenvalue; REPEAT applies exp(8Q) repeatedly, resetting the
        sink state and renormalising after each step

    Returns
    -------
    ndarray, shape (n,)
    """
    if DistributionMethod(method) == DistributionMethod.EIGEN:
        v = _eigen_vector(Q, rank=1)
        v[0] = 0.0
        return _normalise(v, "quasi-stationary")

    P = matrix_exponential(Q * 8.0, 1.0)
    n = Q.shape[0]
    current = np.full(n, 1.0 / (n - 1))
    current[0] = 0.0
    for _ in range(_MAX_QSTAT_REPS):
        updated = current @ P
        updated[0] = 0.0
        updated /= updated[1:].sum()
        if _converged(current[1:], updated[1:]):
            return updated
        current = updated
    raise RateException("Cannot calculate quasi-stationary distribution - no convergence")


@lru_cache(maxsize=256)
def _gamma_rates(alpha: float, n: int) -> tuple[float, ...]:
    # Category boundaries at the i/n quantiles of Gamma(alpha, rate=alpha)
    cuts = gamma.ppf(np.arange(1, n) / n, alpha, scale=1.0 / alpha)
    # Mean of each category via the incomplete gamma function with shape alpha + 1
    upper = np.append(gamma.cdf(cuts * alpha, alpha + 1.0), 1.0)
    lower = np.insert(upper[:-1], 0, 0.0)
    return tuple((upper - lower) * n)


def discrete_gamma_rates(alpha: float, n: int) -> np.ndarray:
    """
    Mean rates of ``n`` equally probable categories of a mean-one Gamma.

    Follows Yang (1994): the Gamma(alpha, alpha) distribution is cut at its
    i/n quantiles and each category is represented by its mean, so the
    rates average exactly to one.

    Parameters
    ----------
    alpha : float
        Gamma shape parameter (must be positive)
    n : int
        Number of categories

    Returns
    -------
    ndarray, shape (n,)
        Category rates in increasing order
    """
    if not alpha > 0.0:
        raise ParameterException(f"Gamma shape parameter must be positive, got {alpha}")
    if n < 1:
        raise ParameterException(f"Number of Gamma categories must be positive, got {n}")
    return np.array(_gamma_rates(float(alpha), int(n)))


def _eigen_vector(Q: np.ndarray, rank: int) -> np.ndarray:
    try:
        eigenvalues, eigenvectors = np.linalg.eig(np.asarray(Q, dtype=float).T)
    except np.linalg.LinAlgError as e:
        raise RateException(f"Eigenvalue calculation does not converge: {e}") from e
    order = np.argsort(-eigenvalues.real, kind="stable")
    return eigenvectors[:, order[rank]].real.copy()


def _eigen_distribution(Q: np.ndarray, rank: int) -> np.ndarray:
    return _normalise(_eigen_vector(Q, rank), "stationary")


def _normalise(v: np.ndarray, kind: str) -> np.ndarray:
    total = v.sum()
    if total == 0.0 or not np.isfinite(total):
        raise RateException(f"Cannot calculate {kind} distribution")
    v = v / total
    # Remove rounding noise around zero
    v[np.abs(v) < 1e-15] = 0.0
    return v


def _converged(a: np.ndarray, b: np.ndarray) -> bool:
    with np.errstate(divide="ignore", invalid="ignore"):
        ratio = np.where(a == b, 1.0, a / b)
        return bool(np.all(np.abs(np.log(ratio)) < _CONVERGENCE))
