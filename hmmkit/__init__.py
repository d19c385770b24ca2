"""
hmmkit: Hidden Markov Model inference and training engine

Scaled forward/backward passes, Viterbi decoding, supervised counting and
Baum-Welch re-estimation for HMMs with two-dimensional discrete emissions.
"""

__version__ = "0.1.0"

from .config import get_config, set_config
from .logger import get_logger
from .hmm import HiddenMarkovModel

__all__ = [
    "get_config",
    "set_config",
    "get_logger",
    "HiddenMarkovModel",
    "__version__"
]
