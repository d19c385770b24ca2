"""
Supervised parameter estimation by frequency counting.

Used when the hidden state at every time step is known: the time index
doubles as the state index, and each symbol pair (position, length)
carries the label that is counted into the emission tensor.
"""

from typing import List, Sequence

import numpy as np

from ..hmm.model import HiddenMarkovModel, ObservationLike, is_silent
from ..exceptions import ObservationError
from ..logger import get_logger

logger = get_logger(__name__)


class SupervisedTrainer:
    """
    Counting estimator for fully labelled sequences.

    Counts are added onto the model's current parameters and every
    state's accumulated values are then divided by the number of times
    that state (time index) was visited. States never visited keep their
    values untouched.
    """

    def __init__(self):
        self.visit_counts = None

    def _validate_corpus(self, model: HiddenMarkovModel, sequences: Sequence[ObservationLike]) -> List[np.ndarray]:
        if len(sequences) == 0:
            raise ObservationError("sequences cannot be empty")

        validated = []
        for seq_idx, observation in enumerate(sequences):
            obs = model.validate_observations(observation)
            if len(obs) > model.n_states:
                raise ObservationError(
                    f"Sequence {seq_idx} has {len(obs)} steps but the model only has "
                    f"{model.n_states} states"
                )
            validated.append(obs)
        return validated

    def learn(self, model: HiddenMarkovModel, sequences: Sequence[ObservationLike]) -> None:
        """
        Update the model in place from labelled sequences.

        Args:
            model: Model to update
            sequences: Sequences of (position, length) pairs, one per state

        Raises:
            ObservationError: If a sequence is invalid or longer than n_states
        """
        corpus = self._validate_corpus(model, sequences)
        visits = np.zeros(model.n_states, dtype=np.int64)

        for obs in corpus:
            T = len(obs)

            for t in range(T):
                position, length = int(obs[t, 0]), int(obs[t, 1])
                visits[t] += 1

                if not is_silent(position, length):
                    model.pi[t] += 1.0
                    model.B[t, position, :length] += 1.0
                    model.B[t, :max(position - 1, 0), length] += 1.0

                # Transition to the next emitting step only
                for j in range(t + 1, T):
                    if not is_silent(int(obs[j, 0]), int(obs[j, 1])):
                        model.A[t, j] += 1.0
                        break

        visited = visits > 0
        model.pi[visited] /= visits[visited]
        model.A[visited, :] /= visits[visited][:, np.newaxis]
        model.B[visited, :, :] /= visits[visited][:, np.newaxis, np.newaxis]

        self.visit_counts = visits

        logger.info(f"Supervised update from {len(corpus)} sequences: "
                    f"{int(visited.sum())}/{model.n_states} states visited")


def learn(model: HiddenMarkovModel, sequences: Sequence[ObservationLike]) -> None:
    """Update the model in place by counting over labelled sequences."""
    SupervisedTrainer().learn(model, sequences)
