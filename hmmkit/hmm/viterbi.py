"""
Viterbi decoding in the negative-log-probability domain.
"""

from typing import Tuple

import numpy as np

from .model import HiddenMarkovModel, ObservationLike, is_silent
from ..logger import get_logger

logger = get_logger(__name__)


def _emission_cost(model: HiddenMarkovModel, p: int, q: int) -> np.ndarray:
    if is_silent(p, q):
        return np.zeros(model.n_states)
    with np.errstate(divide='ignore'):
        return -np.log(model.B[:, p, q])


def viterbi(model: HiddenMarkovModel, observation: ObservationLike) -> Tuple[np.ndarray, float]:
    """
    Find the most probable hidden-state path for an observation sequence.

    Costs are accumulated as -log probabilities, so a zero probability on
    a path shows up as an infinite cost rather than an error. Ties are
    broken in favour of the lowest state index.

    Args:
        model: Model to decode with (read only)
        observation: Sequence of (p, q) symbol pairs [T, 2]

    Returns:
        Tuple of:
        - path: Decoded state indices [T]
        - probability: exp(-cost) of the decoded path

    Raises:
        ObservationError: If the observation sequence is invalid
    """
    obs = model.validate_observations(observation)
    T = len(obs)
    N = model.n_states

    with np.errstate(divide='ignore'):
        transition_cost = -np.log(model.A)
        initial_cost = -np.log(model.pi)

    cost = np.zeros((T, N))
    backpointer = np.zeros((T, N), dtype=np.int64)

    # Initialization
    cost[0, :] = initial_cost + _emission_cost(model, obs[0, 0], obs[0, 1])

    # Induction: candidates[i, j] is the cost of reaching j from i
    for t in range(1, T):
        candidates = cost[t - 1, :][:, np.newaxis] + transition_cost
        backpointer[t, :] = np.argmin(candidates, axis=0)
        cost[t, :] = candidates[backpointer[t, :], np.arange(N)] + _emission_cost(model, obs[t, 0], obs[t, 1])

    # Termination and traceback
    path = np.zeros(T, dtype=np.int64)
    path[T - 1] = int(np.argmin(cost[T - 1, :]))
    min_cost = cost[T - 1, path[T - 1]]

    for t in range(T - 2, -1, -1):
        path[t] = backpointer[t + 1, path[t + 1]]

    probability = float(np.exp(-min_cost))

    logger.debug(f"Viterbi decoded T={T}: min_cost={min_cost:.6f}, probability={probability:.6g}")
    return path, probability
