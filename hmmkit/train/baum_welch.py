"""
Baum-Welch (forward-backward EM) re-estimation.

Each iteration runs the scaled forward and backward passes over every
sequence of the corpus, turns them into state-occupancy (gamma) and
state-transition (epsilon) posteriors, and re-estimates pi, A and B from
the expected counts. The loop stops according to check_convergence.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..config import get_config
from ..exceptions import ModelTrainingError, ObservationError
from ..hmm.convergence import check_convergence
from ..hmm.forward_backward import backward, emission_factor, forward
from ..hmm.model import HiddenMarkovModel, ObservationLike, silent_mask
from ..logger import get_logger

logger = get_logger(__name__)

# Smallest positive double; the "previous likelihood" before the first iteration
INITIAL_LIKELIHOOD = float(np.nextafter(0.0, 1.0))


@dataclass
class SequenceStatistics:
    """Posteriors of one sequence for one EM iteration."""
    gamma: np.ndarray        # [T, n_states]
    epsilon: np.ndarray      # [T-1, n_states, n_states]
    log_likelihood: float


class BaumWelchTrainer:
    """
    Unsupervised HMM trainer.

    The model passed to fit() is owned by the trainer for the duration of
    the call. The expectation step only reads it, so sequences may be
    processed concurrently; parameters are replaced after all sequences
    of an iteration have been joined.
    """

    def __init__(self,
                 max_iterations: Optional[int] = None,
                 convergence_tolerance: Optional[float] = None,
                 emission_floor: Optional[float] = None,
                 n_jobs: Optional[int] = None):
        """
        Initialize BaumWelchTrainer. Unset arguments fall back to the
        'training' configuration section.

        Args:
            max_iterations: Iteration cap passed to the convergence rule
            convergence_tolerance: Likelihood-change threshold
            emission_floor: Value used for emission probabilities with no
                expected counts
            n_jobs: Worker threads for the expectation step

        Raises:
            ModelTrainingError: If emission_floor or n_jobs is invalid
        """
        self.max_iterations = int(max_iterations if max_iterations is not None
                                  else get_config('training', 'max_iterations'))
        self.convergence_tolerance = float(convergence_tolerance if convergence_tolerance is not None
                                           else get_config('training', 'convergence_tolerance'))
        self.emission_floor = float(emission_floor if emission_floor is not None
                                    else get_config('training', 'emission_floor'))
        self.n_jobs = int(n_jobs if n_jobs is not None else get_config('training', 'n_jobs'))

        if not 0.0 <= self.emission_floor <= 1.0:
            raise ModelTrainingError(f"emission_floor must lie in [0, 1], got {self.emission_floor}")
        if self.n_jobs < 1:
            raise ModelTrainingError(f"n_jobs must be at least 1, got {self.n_jobs}")

        self.training_stats = {}

        logger.debug(f"BaumWelchTrainer initialized: max_iterations={self.max_iterations}, "
                     f"tolerance={self.convergence_tolerance}, n_jobs={self.n_jobs}")

    def compute_statistics(self, model: HiddenMarkovModel, observation: np.ndarray) -> SequenceStatistics:
        """
        Expectation step for a single validated sequence.

        Args:
            model: Current model (read only)
            observation: Validated observation array [T, 2]

        Returns:
            SequenceStatistics with normalized gamma and epsilon
        """
        T = len(observation)
        alpha, scaling = forward(model, observation)
        beta = backward(model, observation, scaling)

        gamma = alpha * beta
        gamma_sums = gamma.sum(axis=1)
        nonzero = gamma_sums != 0
        gamma[nonzero] /= gamma_sums[nonzero][:, np.newaxis]

        epsilon = np.zeros((max(T - 1, 0), model.n_states, model.n_states))
        for t in range(T - 1):
            incoming = emission_factor(model, observation[t + 1, 0], observation[t + 1, 1]) * beta[t + 1, :]
            epsilon[t] = alpha[t, :][:, np.newaxis] * model.A * incoming[np.newaxis, :]

            total = epsilon[t].sum()
            if total != 0:
                epsilon[t] /= total

        with np.errstate(divide='ignore'):
            log_likelihood = float(np.sum(np.log(scaling)))

        return SequenceStatistics(gamma=gamma, epsilon=epsilon, log_likelihood=log_likelihood)

    def _expectation(self, model: HiddenMarkovModel, corpus: List[np.ndarray]) -> List[SequenceStatistics]:
        if self.n_jobs == 1 or len(corpus) == 1:
            return [self.compute_statistics(model, obs) for obs in corpus]

        with ThreadPoolExecutor(max_workers=self.n_jobs) as executor:
            return list(executor.map(lambda obs: self.compute_statistics(model, obs), corpus))

    def _maximization(self,
                      model: HiddenMarkovModel,
                      corpus: List[np.ndarray],
                      statistics: List[SequenceStatistics]) -> None:
        N, M0, M1 = model.shape

        # Initial probabilities
        pi_new = np.mean([stats.gamma[0] for stats in statistics], axis=0)

        # Transition probabilities
        A_numerator = np.zeros((N, N))
        A_denominator = np.zeros(N)

        # Emission probabilities over the joint (p, q) alphabet, emitting steps only
        B_numerator = np.zeros((M0 * M1, N))
        B_denominator = np.zeros(N)

        for obs, stats in zip(corpus, statistics):
            A_numerator += stats.epsilon.sum(axis=0)
            A_denominator += stats.gamma[:-1].sum(axis=0)

            emitting = ~silent_mask(obs)
            symbols = obs[emitting, 0] * M1 + obs[emitting, 1]
            np.add.at(B_numerator, symbols, stats.gamma[emitting])
            B_denominator += stats.gamma[emitting].sum(axis=0)

        A_new = np.zeros((N, N))
        occupied = A_denominator != 0
        A_new[occupied] = A_numerator[occupied] / A_denominator[occupied][:, np.newaxis]

        B_numerator = B_numerator.T.reshape(N, M0, M1)
        B_new = np.full((N, M0, M1), self.emission_floor)
        observed = B_numerator != 0
        denominators = np.broadcast_to(B_denominator[:, np.newaxis, np.newaxis], B_numerator.shape)
        B_new[observed] = B_numerator[observed] / denominators[observed]

        model.set_parameters(pi_new, A_new, B_new)

    def _prepare_corpus(self, model: HiddenMarkovModel, sequences: Sequence[ObservationLike]) -> List[np.ndarray]:
        if len(sequences) == 0:
            raise ObservationError("sequences cannot be empty")

        corpus = []
        for seq_idx, observation in enumerate(sequences):
            try:
                corpus.append(model.validate_observations(observation))
            except ObservationError as e:
                raise ObservationError(f"Sequence {seq_idx}: {e}")
        return corpus

    def fit(self, model: HiddenMarkovModel, sequences: Sequence[ObservationLike]) -> float:
        """
        Re-estimate model parameters in place until convergence.

        Args:
            model: Model to train
            sequences: Corpus of observation sequences

        Returns:
            Average log-likelihood of the last evaluated iteration. The
            parameters are those that produced this likelihood.

        Raises:
            ObservationError: If the corpus is empty or contains invalid sequences
        """
        corpus = self._prepare_corpus(model, sequences)

        if self.convergence_tolerance <= 0 and self.max_iterations <= 0:
            logger.warning("Neither a positive tolerance nor an iteration cap was given; skipping training")
            self.training_stats = {
                'converged_by': None,
                'iterations': 0,
                'final_log_likelihood': 0.0,
                'log_likelihood_history': [],
                'training_time': 0.0
            }
            return 0.0

        logger.info(f"Starting Baum-Welch training with {len(corpus)} sequences "
                    f"({sum(len(obs) for obs in corpus)} steps)")

        start_time = time.time()
        history = []
        iteration = 1
        old_likelihood = INITIAL_LIKELIHOOD

        while True:
            statistics = self._expectation(model, corpus)
            new_likelihood = sum(stats.log_likelihood for stats in statistics) / len(corpus)
            history.append(new_likelihood)

            logger.debug(f"Iteration {iteration}: average log_likelihood={new_likelihood:.6f}")

            if check_convergence(old_likelihood, new_likelihood, iteration,
                                 self.max_iterations, self.convergence_tolerance):
                break

            if iteration > 1 and new_likelihood < old_likelihood - 1e-6:
                logger.warning(f"Log-likelihood decreased by {old_likelihood - new_likelihood:.6f} "
                               f"at iteration {iteration}")

            self._maximization(model, corpus, statistics)
            old_likelihood = new_likelihood
            iteration += 1

        converged_by = self._stop_reason(old_likelihood, new_likelihood)
        if converged_by == 'breakdown':
            logger.warning(f"Likelihood breakdown at iteration {iteration}: {new_likelihood}")

        self.training_stats = {
            'converged_by': converged_by,
            'iterations': iteration,
            'final_log_likelihood': new_likelihood,
            'log_likelihood_history': history,
            'training_time': time.time() - start_time
        }

        logger.info(f"Training stopped after {iteration} iterations ({converged_by}): "
                    f"average log_likelihood={new_likelihood:.6f}")

        return new_likelihood

    def _stop_reason(self, old_likelihood: float, new_likelihood: float) -> str:
        if np.isnan(new_likelihood) or np.isinf(new_likelihood):
            return 'breakdown'
        if self.convergence_tolerance > 0 and abs(old_likelihood - new_likelihood) <= self.convergence_tolerance:
            return 'tolerance'
        return 'iterations'

    def get_training_summary(self) -> Dict[str, Any]:
        """Statistics of the last fit() call."""
        return self.training_stats.copy()


def update_model(model: HiddenMarkovModel,
                 sequences: Sequence[ObservationLike],
                 iterations: int,
                 tolerance: float,
                 n_jobs: int = 1) -> float:
    """
    Train a model in place with Baum-Welch.

    Returns:
        Final average log-likelihood
    """
    trainer = BaumWelchTrainer(max_iterations=iterations, convergence_tolerance=tolerance, n_jobs=n_jobs)
    return trainer.fit(model, sequences)
