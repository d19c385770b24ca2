"""
Hidden Markov Model module.

Model container, scaled forward/backward passes, Viterbi decoding,
likelihood evaluation and the convergence rule used by training.
"""

from .model import HiddenMarkovModel, is_silent, SILENT_SYMBOL
from .convergence import check_convergence
from .forward_backward import forward, backward, forward_backward
from .viterbi import viterbi
from .likelihood import evaluate, compute_average_log_likelihood

__all__ = [
    "HiddenMarkovModel",
    "is_silent",
    "SILENT_SYMBOL",
    "check_convergence",
    "forward",
    "backward",
    "forward_backward",
    "viterbi",
    "evaluate",
    "compute_average_log_likelihood"
]
