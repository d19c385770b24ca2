"""
Sequence likelihood from forward scaling coefficients.
"""

from typing import Iterable

import numpy as np

from .forward_backward import forward
from .model import HiddenMarkovModel, ObservationLike


def evaluate(model: HiddenMarkovModel, observation: ObservationLike, logarithm: bool = True) -> float:
    """
    Probability of an observation sequence.

    log P(O | model) is the sum of the log scaling coefficients of the
    forward pass.

    Args:
        model: Model to evaluate (read only)
        observation: Sequence of (p, q) symbol pairs
        logarithm: Return log P(O | model) when True, P(O | model) otherwise

    Returns:
        Log-likelihood or probability of the sequence
    """
    _, scaling = forward(model, observation)

    with np.errstate(divide='ignore'):
        log_likelihood = float(np.sum(np.log(scaling)))

    if logarithm:
        return log_likelihood
    return float(np.exp(log_likelihood))


def compute_average_log_likelihood(model: HiddenMarkovModel, sequences: Iterable[ObservationLike]) -> float:
    """Average log-likelihood over a corpus of sequences."""
    scores = [evaluate(model, observation) for observation in sequences]
    if not scores:
        raise ValueError("sequences cannot be empty")
    return float(np.mean(scores))
