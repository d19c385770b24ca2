"""
Hidden Markov Model parameter container.

This module implements a discrete HMM whose emissions are joint symbols
(p, q) drawn from two finite alphabets of sizes M0 and M1. The pair (0, 0)
is reserved as the silent (non-emitting) marker.
"""

import numbers
from typing import Optional, Tuple, Sequence, Union

import numpy as np

from ..config import get_config
from ..exceptions import InvalidDimensionsError, ObservationError
from ..logger import get_logger

logger = get_logger(__name__)

SILENT_SYMBOL = (0, 0)

ObservationLike = Union[np.ndarray, Sequence[Sequence[int]]]


def is_silent(p: int, q: int) -> bool:
    """Return True if the symbol pair marks a non-emitting time step."""
    return p == SILENT_SYMBOL[0] and q == SILENT_SYMBOL[1]


def silent_mask(observation: np.ndarray) -> np.ndarray:
    """Boolean mask [T] of silent time steps in a validated observation."""
    return (observation[:, 0] == SILENT_SYMBOL[0]) & (observation[:, 1] == SILENT_SYMBOL[1])


def _check_dimension(name: str, value) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise InvalidDimensionsError(f"{name} must be an integer, got {value!r}")
    if value <= 0:
        raise InvalidDimensionsError(f"{name} must be positive, got {value}")
    return int(value)


class HiddenMarkovModel:
    """
    Discrete Hidden Markov Model with a two-dimensional emission alphabet.

    Parameters:
    - A: transition matrix [n_states, n_states], A[i, j] = P(q_t+1=j | q_t=i)
    - B: emission tensor [n_states, n_symbols_0, n_symbols_1]
    - pi: initial state distribution [n_states]

    A freshly constructed model has uniform rows in A, uniform B slices
    and an all-zero pi; pi is expected to be filled by a trainer or by
    set_parameters before inference.
    """

    def __init__(self, n_states: int, n_symbols_0: int, n_symbols_1: int):
        """
        Initialize HiddenMarkovModel with specified dimensions.

        Args:
            n_states: Number of hidden states (N)
            n_symbols_0: Cardinality of the first emission dimension (M0)
            n_symbols_1: Cardinality of the second emission dimension (M1)

        Raises:
            InvalidDimensionsError: If any dimension is not a positive integer
        """
        self.n_states = _check_dimension('n_states', n_states)
        self.n_symbols_0 = _check_dimension('n_symbols_0', n_symbols_0)
        self.n_symbols_1 = _check_dimension('n_symbols_1', n_symbols_1)

        self.pi = np.zeros(self.n_states)
        self.A = np.full((self.n_states, self.n_states), 1.0 / self.n_states)
        self.B = np.full((self.n_states, self.n_symbols_0, self.n_symbols_1),
                         1.0 / (self.n_symbols_0 * self.n_symbols_1))

        logger.debug(f"Initialized HiddenMarkovModel with {self.n_states} states and "
                     f"{self.n_symbols_0}x{self.n_symbols_1} symbols")

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Model dimensions as (N, M0, M1)."""
        return self.n_states, self.n_symbols_0, self.n_symbols_1

    def validate_stochastic_matrices(self, tolerance: float = 1e-8,
                                     emission_floor: Optional[float] = None) -> bool:
        """
        Validate that the model is a proper probability model.

        Rows of A and slices of B that carry no mass at all are accepted:
        re-estimation leaves them empty for states with zero occupancy. A
        B slice holding nothing but the emission floor counts as empty too.

        Args:
            tolerance: Absolute tolerance on probability sums
            emission_floor: Floor used by re-estimation (defaults to the
                'training.emission_floor' setting)

        Returns:
            bool: True if all parameters are valid

        Raises:
            ValueError: If any parameter violates stochastic properties
        """
        if emission_floor is None:
            emission_floor = get_config('training', 'emission_floor') or 0.0

        for name, values in (('Initial probabilities', self.pi),
                             ('Transition matrix', self.A),
                             ('Emission tensor', self.B)):
            if np.any(np.isnan(values)):
                raise ValueError(f"{name} contain NaN values")
            if np.any(values < 0):
                raise ValueError(f"{name} contain negative values")
            if np.any(values > 1.0 + tolerance):
                raise ValueError(f"{name} contain values greater than 1")

        if not np.isclose(self.pi.sum(), 1.0, atol=tolerance):
            raise ValueError(f"Initial probabilities sum to {self.pi.sum()}, expected 1.0")

        row_sums_A = self.A.sum(axis=1)
        bad_rows = (row_sums_A != 0) & ~np.isclose(row_sums_A, 1.0, atol=tolerance)
        if np.any(bad_rows):
            raise ValueError(f"Transition matrix rows don't sum to 1.0: {row_sums_A}")

        flat_B = self.B.reshape(self.n_states, -1)
        slice_sums_B = flat_B.sum(axis=1)
        unoccupied = np.all(flat_B == 0, axis=1)
        if emission_floor > 0:
            unoccupied |= np.all(np.isclose(flat_B, emission_floor, rtol=tolerance, atol=0), axis=1)
        bad_slices = ~unoccupied & ~np.isclose(slice_sums_B, 1.0, atol=tolerance)
        if np.any(bad_slices):
            raise ValueError(f"Emission distributions don't sum to 1.0: {slice_sums_B}")

        logger.debug("All stochastic properties validated successfully")
        return True

    def get_parameters(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Get current model parameters.

        Returns:
            Tuple of (pi, A, B) copies
        """
        return self.pi.copy(), self.A.copy(), self.B.copy()

    def set_parameters(self, pi, A, B) -> None:
        """
        Replace model parameters after checking their shapes.

        Args:
            pi: Initial state probabilities [n_states]
            A: Transition matrix [n_states, n_states]
            B: Emission tensor [n_states, n_symbols_0, n_symbols_1]

        Raises:
            ValueError: If parameter dimensions don't match the model
        """
        pi = np.asarray(pi, dtype=float)
        A = np.asarray(A, dtype=float)
        B = np.asarray(B, dtype=float)

        if pi.shape != (self.n_states,):
            raise ValueError(f"pi shape {pi.shape} doesn't match expected ({self.n_states},)")

        if A.shape != (self.n_states, self.n_states):
            raise ValueError(f"A shape {A.shape} doesn't match expected ({self.n_states}, {self.n_states})")

        expected_B = (self.n_states, self.n_symbols_0, self.n_symbols_1)
        if B.shape != expected_B:
            raise ValueError(f"B shape {B.shape} doesn't match expected {expected_B}")

        self.pi = pi.copy()
        self.A = A.copy()
        self.B = B.copy()

        logger.debug("Model parameters updated")

    def copy(self) -> 'HiddenMarkovModel':
        """Return an independent copy of the model."""
        clone = HiddenMarkovModel(self.n_states, self.n_symbols_0, self.n_symbols_1)
        clone.set_parameters(self.pi, self.A, self.B)
        return clone

    def validate_observations(self, observation: ObservationLike) -> np.ndarray:
        """
        Convert an observation sequence to an integer array of shape [T, 2].

        Raises:
            ObservationError: If the sequence is empty, malformed, or holds
                symbols outside the model's alphabets
        """
        try:
            obs = np.asarray(observation)
        except (TypeError, ValueError) as e:
            raise ObservationError(f"Observation sequence is not array-like: {e}")

        if obs.size == 0:
            raise ObservationError("Observation sequence is empty")

        if obs.ndim != 2 or obs.shape[1] != 2:
            raise ObservationError(f"Observation sequence must have shape (T, 2), got {obs.shape}")

        if not np.issubdtype(obs.dtype, np.integer):
            if not np.issubdtype(obs.dtype, np.number) or not np.all(np.mod(obs, 1) == 0):
                raise ObservationError("Observation symbols must be integers")
        obs = obs.astype(np.int64)

        if (np.any(obs < 0) or np.any(obs[:, 0] >= self.n_symbols_0)
                or np.any(obs[:, 1] >= self.n_symbols_1)):
            raise ObservationError(
                f"Observation symbols must lie in [0, {self.n_symbols_0 - 1}] x "
                f"[0, {self.n_symbols_1 - 1}]"
            )

        return obs

    def score(self, observation: ObservationLike, logarithm: bool = True) -> float:
        """
        Probability of an observation sequence under the model.

        Args:
            observation: Sequence of (p, q) symbol pairs
            logarithm: Return the log-likelihood instead of the probability
        """
        from .likelihood import evaluate
        return evaluate(self, observation, logarithm=logarithm)

    def decode(self, observation: ObservationLike) -> Tuple[np.ndarray, float]:
        """Most probable hidden-state path and its probability."""
        from .viterbi import viterbi
        return viterbi(self, observation)

    def __repr__(self) -> str:
        """String representation of the HMM."""
        return (f"HiddenMarkovModel(n_states={self.n_states}, "
                f"n_symbols_0={self.n_symbols_0}, n_symbols_1={self.n_symbols_1})")
