"""
Tests for Baum-Welch re-estimation.

Covers posterior computation, likelihood monotonicity, the stopping
rules, silent-step handling and concurrent expectation steps.
"""

import numpy as np
import pytest

from conftest import sample_sequences
from hmmkit.config import set_config
from hmmkit.exceptions import ModelTrainingError, ObservationError
from hmmkit.hmm import HiddenMarkovModel
from hmmkit.hmm.likelihood import compute_average_log_likelihood
from hmmkit.train.baum_welch import BaumWelchTrainer, update_model


class TestSequenceStatistics:
    """Test gamma and epsilon posteriors."""

    def test_posteriors_normalized(self, small_model, observation_with_silence):
        trainer = BaumWelchTrainer(max_iterations=1, convergence_tolerance=0.1)
        obs = small_model.validate_observations(observation_with_silence)

        stats = trainer.compute_statistics(small_model, obs)

        assert stats.gamma.shape == (5, 3)
        assert stats.epsilon.shape == (4, 3, 3)
        np.testing.assert_allclose(stats.gamma.sum(axis=1), np.ones(5))
        np.testing.assert_allclose(stats.epsilon.sum(axis=(1, 2)), np.ones(4))

    def test_epsilon_marginals_match_gamma(self, small_model, observation_with_silence):
        trainer = BaumWelchTrainer(max_iterations=1, convergence_tolerance=0.1)
        obs = small_model.validate_observations(observation_with_silence)

        stats = trainer.compute_statistics(small_model, obs)

        np.testing.assert_allclose(stats.epsilon.sum(axis=2), stats.gamma[:-1])
        np.testing.assert_allclose(stats.epsilon.sum(axis=1), stats.gamma[1:])

    def test_log_likelihood_matches_evaluate(self, small_model, observation_with_silence):
        trainer = BaumWelchTrainer(max_iterations=1, convergence_tolerance=0.1)
        obs = small_model.validate_observations(observation_with_silence)

        stats = trainer.compute_statistics(small_model, obs)

        assert stats.log_likelihood == pytest.approx(small_model.score(obs))

    def test_single_step_sequence(self, small_model):
        trainer = BaumWelchTrainer(max_iterations=1, convergence_tolerance=0.1)
        obs = small_model.validate_observations([[1, 1]])

        stats = trainer.compute_statistics(small_model, obs)

        assert stats.epsilon.shape == (0, 3, 3)
        np.testing.assert_allclose(stats.gamma.sum(), 1.0)


class TestBaumWelchTraining:
    """Test the EM loop."""

    def test_likelihood_non_decreasing(self, perturbed_model, training_corpus):
        trainer = BaumWelchTrainer(max_iterations=25, convergence_tolerance=1e-8)
        trainer.fit(perturbed_model, training_corpus)

        history = np.array(trainer.training_stats['log_likelihood_history'])
        assert len(history) > 1
        assert np.all(np.diff(history) >= -1e-8)

    def test_improves_on_starting_point(self, perturbed_model, training_corpus):
        initial = compute_average_log_likelihood(perturbed_model, training_corpus)

        final = update_model(perturbed_model, training_corpus, iterations=20, tolerance=1e-6)

        assert final > initial

    def test_returned_likelihood_matches_final_parameters(self, perturbed_model, training_corpus):
        """Training stops before re-estimating, so the result scores the current model."""
        final = BaumWelchTrainer(max_iterations=10, convergence_tolerance=1e-6).fit(
            perturbed_model, training_corpus)

        assert final == pytest.approx(compute_average_log_likelihood(perturbed_model, training_corpus))

    def test_trained_model_is_stochastic(self, perturbed_model, training_corpus):
        update_model(perturbed_model, training_corpus, iterations=10, tolerance=1e-6)

        assert perturbed_model.validate_stochastic_matrices() is True

    def test_unreachable_state_stays_valid(self, small_model, training_corpus):
        """A state with zero occupancy keeps an empty A row and a floor-only B slice."""
        A = np.array([[0.6, 0.4, 0.0],
                      [0.3, 0.7, 0.0],
                      [1 / 3, 1 / 3, 1 / 3]])
        model = HiddenMarkovModel(3, 3, 3)
        model.set_parameters([0.5, 0.5, 0.0], A, small_model.B)

        BaumWelchTrainer(max_iterations=2, convergence_tolerance=0).fit(model, training_corpus)

        np.testing.assert_array_equal(model.A[2], np.zeros(3))
        np.testing.assert_array_equal(model.B[2], np.full((3, 3), 1e-10))
        assert model.validate_stochastic_matrices() is True

    def test_unreachable_state_with_custom_floor(self, small_model, training_corpus):
        A = np.array([[0.6, 0.4, 0.0],
                      [0.3, 0.7, 0.0],
                      [0.5, 0.5, 0.0]])
        model = HiddenMarkovModel(3, 3, 3)
        model.set_parameters([0.5, 0.5, 0.0], A, small_model.B)

        BaumWelchTrainer(max_iterations=3, convergence_tolerance=0, emission_floor=1e-6).fit(
            model, training_corpus)

        assert model.validate_stochastic_matrices(tolerance=1e-5, emission_floor=1e-6) is True
        with pytest.raises(ValueError, match="Emission distributions"):
            model.validate_stochastic_matrices(tolerance=1e-5, emission_floor=0.0)

    def test_stops_on_tolerance(self, perturbed_model, training_corpus):
        trainer = BaumWelchTrainer(max_iterations=500, convergence_tolerance=1e-3)
        trainer.fit(perturbed_model, training_corpus)

        stats = trainer.get_training_summary()
        assert stats['converged_by'] == 'tolerance'
        assert stats['iterations'] < 500
        assert len(stats['log_likelihood_history']) == stats['iterations']

    def test_stops_on_iteration_cap(self, perturbed_model, training_corpus):
        trainer = BaumWelchTrainer(max_iterations=3, convergence_tolerance=0)
        trainer.fit(perturbed_model, training_corpus)

        stats = trainer.get_training_summary()
        assert stats['converged_by'] == 'iterations'
        assert stats['iterations'] == 3
        assert len(stats['log_likelihood_history']) == 3

    def test_single_iteration_leaves_model_untouched(self, perturbed_model, training_corpus):
        before = perturbed_model.get_parameters()

        BaumWelchTrainer(max_iterations=1, convergence_tolerance=0).fit(perturbed_model, training_corpus)

        for old, new in zip(before, perturbed_model.get_parameters()):
            np.testing.assert_array_equal(old, new)

    def test_breakdown_returns_last_value(self, training_corpus):
        """A zero initial distribution gives -inf likelihood, which stops training."""
        model = HiddenMarkovModel(3, 3, 3)
        before = model.get_parameters()

        result = BaumWelchTrainer(max_iterations=50, convergence_tolerance=1e-4).fit(model, training_corpus)

        assert result == -np.inf
        assert model.get_parameters()[1].tolist() == before[1].tolist()
        assert np.array_equal(model.B, before[2])

    def test_breakdown_reported(self, training_corpus):
        trainer = BaumWelchTrainer(max_iterations=50, convergence_tolerance=1e-4)
        trainer.fit(HiddenMarkovModel(3, 3, 3), training_corpus)

        assert trainer.training_stats['converged_by'] == 'breakdown'
        assert trainer.training_stats['iterations'] == 1

    def test_no_stopping_rule_returns_zero(self, perturbed_model, training_corpus):
        before = perturbed_model.get_parameters()

        result = update_model(perturbed_model, training_corpus, iterations=0, tolerance=0)

        assert result == 0.0
        np.testing.assert_array_equal(perturbed_model.A, before[1])

    def test_silent_symbol_keeps_floor(self, perturbed_model, training_corpus):
        corpus = [seq + [[0, 0]] for seq in training_corpus]

        trainer = BaumWelchTrainer(max_iterations=5, convergence_tolerance=0, emission_floor=1e-10)
        trainer.fit(perturbed_model, corpus)

        np.testing.assert_array_equal(perturbed_model.B[:, 0, 0], np.full(3, 1e-10))

    def test_unseen_symbols_get_floor(self, perturbed_model):
        corpus = [[[1, 1], [2, 2], [1, 1], [2, 2]], [[2, 2], [1, 1]]]

        BaumWelchTrainer(max_iterations=4, convergence_tolerance=0, emission_floor=1e-6).fit(
            perturbed_model, corpus)

        assert perturbed_model.B[0, 1, 2] == pytest.approx(1e-6)
        np.testing.assert_allclose(perturbed_model.B[:, 1, 1] + perturbed_model.B[:, 2, 2], np.ones(3))

    def test_pi_is_average_first_step_posterior(self, perturbed_model, training_corpus):
        trainer = BaumWelchTrainer(max_iterations=2, convergence_tolerance=0)
        corpus = [perturbed_model.validate_observations(seq) for seq in training_corpus]
        first = [trainer.compute_statistics(perturbed_model, obs).gamma[0] for obs in corpus]

        trainer.fit(perturbed_model, training_corpus)

        np.testing.assert_allclose(perturbed_model.pi, np.mean(first, axis=0))

    def test_parallel_matches_sequential(self, perturbed_model, training_corpus):
        sequential = perturbed_model.copy()
        parallel = perturbed_model.copy()

        result_seq = BaumWelchTrainer(max_iterations=5, convergence_tolerance=0, n_jobs=1).fit(
            sequential, training_corpus)
        result_par = BaumWelchTrainer(max_iterations=5, convergence_tolerance=0, n_jobs=3).fit(
            parallel, training_corpus)

        assert result_par == pytest.approx(result_seq)
        np.testing.assert_allclose(parallel.A, sequential.A)
        np.testing.assert_allclose(parallel.B, sequential.B)
        np.testing.assert_allclose(parallel.pi, sequential.pi)

    def test_recovers_generating_structure(self, small_model):
        """Training from a perturbed start gets closer to the generating model's likelihood."""
        corpus = sample_sequences(small_model, n_sequences=20, length=40, seed=21)
        start = HiddenMarkovModel(3, 3, 3)
        rng = np.random.default_rng(4)
        A = rng.random((3, 3)) + 0.5
        B = rng.random((3, 3, 3)) + 0.5
        start.set_parameters(np.full(3, 1.0 / 3),
                             A / A.sum(axis=1, keepdims=True),
                             B / B.sum(axis=(1, 2), keepdims=True))
        initial = compute_average_log_likelihood(start, corpus)
        reference = compute_average_log_likelihood(small_model, corpus)

        final = BaumWelchTrainer(max_iterations=200, convergence_tolerance=1e-6).fit(start, corpus)

        assert final > initial
        assert final > reference - abs(reference) * 0.05


class TestTrainerConfiguration:
    """Test argument handling."""

    def test_defaults_from_config(self):
        set_config('training', 'max_iterations', 42)
        set_config('training', 'n_jobs', 2)

        trainer = BaumWelchTrainer()

        assert trainer.max_iterations == 42
        assert trainer.n_jobs == 2
        assert trainer.emission_floor == pytest.approx(1e-10)

    def test_invalid_n_jobs(self):
        with pytest.raises(ModelTrainingError):
            BaumWelchTrainer(n_jobs=0)

    def test_invalid_floor(self):
        with pytest.raises(ModelTrainingError):
            BaumWelchTrainer(emission_floor=-1.0)

    def test_empty_corpus(self, small_model):
        with pytest.raises(ObservationError):
            BaumWelchTrainer(max_iterations=5, convergence_tolerance=0.1).fit(small_model, [])

    def test_invalid_sequence_named(self, small_model):
        with pytest.raises(ObservationError, match="Sequence 1"):
            BaumWelchTrainer(max_iterations=5, convergence_tolerance=0.1).fit(
                small_model, [[[1, 1]], [[7, 7]]])
