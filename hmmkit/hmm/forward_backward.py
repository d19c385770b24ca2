"""
Scaled forward and backward recurrences.

Both passes share one set of per-step scaling coefficients, produced by
the forward pass, so that the product alpha[t] * beta[t] stays well
conditioned on long sequences. Silent steps contribute an emission factor
of one instead of indexing the emission tensor.
"""

from typing import Optional, Tuple

import numpy as np

from .model import HiddenMarkovModel, ObservationLike, is_silent
from ..logger import get_logger

logger = get_logger(__name__)


def emission_factor(model: HiddenMarkovModel, p: int, q: int) -> np.ndarray:
    """
    Emission probabilities of symbol (p, q) for every state.

    Returns:
        Array [n_states]; all ones when (p, q) is the silent symbol
    """
    if is_silent(p, q):
        return np.ones(model.n_states)
    return model.B[:, p, q]


def forward(model: HiddenMarkovModel,
            observation: ObservationLike,
            scaling: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Compute scaled forward probabilities.

    Args:
        model: Model to evaluate (read only)
        observation: Sequence of (p, q) symbol pairs [T, 2]
        scaling: Optional pre-zeroed float array [T] that receives the
            scaling coefficients in place

    Returns:
        Tuple of:
        - alpha: Scaled forward probabilities [T, n_states]
        - scaling: Scaling coefficients [T]

    Raises:
        ObservationError: If the observation sequence is invalid
        ValueError: If scaling has the wrong shape
    """
    obs = model.validate_observations(observation)
    T = len(obs)

    if scaling is None:
        scaling = np.zeros(T)
    elif scaling.shape != (T,):
        raise ValueError(f"scaling shape {scaling.shape} doesn't match sequence length {T}")

    alpha = np.zeros((T, model.n_states))

    # t = 0: Initialize
    alpha[0, :] = model.pi * emission_factor(model, obs[0, 0], obs[0, 1])
    scaling[0] = alpha[0, :].sum()
    if scaling[0] != 0:
        alpha[0, :] /= scaling[0]

    # t = 1, ..., T-1: Induction
    for t in range(1, T):
        alpha[t, :] = (alpha[t - 1, :] @ model.A) * emission_factor(model, obs[t, 0], obs[t, 1])
        scaling[t] = alpha[t, :].sum()
        if scaling[t] != 0:
            alpha[t, :] /= scaling[t]

    return alpha, scaling


def backward(model: HiddenMarkovModel,
             observation: ObservationLike,
             scaling: np.ndarray) -> np.ndarray:
    """
    Compute scaled backward probabilities.

    Args:
        model: Model to evaluate (read only)
        observation: Sequence of (p, q) symbol pairs [T, 2]
        scaling: Scaling coefficients [T] produced by forward() for the
            same model and sequence

    Returns:
        beta: Scaled backward probabilities [T, n_states]

    Raises:
        ObservationError: If the observation sequence is invalid
        ValueError: If scaling has the wrong shape
    """
    obs = model.validate_observations(observation)
    T = len(obs)

    scaling = np.asarray(scaling, dtype=float)
    if scaling.shape != (T,):
        raise ValueError(f"scaling shape {scaling.shape} doesn't match sequence length {T}")

    beta = np.zeros((T, model.n_states))

    # t = T-1: Initialize
    beta[T - 1, :] = 1.0 / scaling[T - 1] if scaling[T - 1] != 0 else 1.0

    # t = T-2, ..., 0: Induction
    for t in range(T - 2, -1, -1):
        weighted = emission_factor(model, obs[t + 1, 0], obs[t + 1, 1]) * beta[t + 1, :]
        beta[t, :] = model.A @ weighted
        if scaling[t] != 0:
            beta[t, :] /= scaling[t]

    return beta


def forward_backward(model: HiddenMarkovModel,
                     observation: ObservationLike) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Run both passes with shared scaling.

    Returns:
        Tuple of (alpha, beta, scaling)
    """
    obs = model.validate_observations(observation)
    alpha, scaling = forward(model, obs)
    beta = backward(model, obs, scaling)

    logger.debug(f"Forward-backward completed: T={len(obs)}")
    return alpha, beta, scaling
