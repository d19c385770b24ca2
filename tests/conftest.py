"""
Test configuration and fixtures for hmmkit.

This file contains pytest configuration and shared fixtures
for testing the hmmkit system.
"""

import itertools
import tempfile
from pathlib import Path

import numpy as np
import pytest

from hmmkit.config import reset_config
from hmmkit.hmm.model import HiddenMarkovModel, is_silent


def make_model(pi, A, B) -> HiddenMarkovModel:
    """Build a model from explicit parameters."""
    B = np.asarray(B, dtype=float)
    model = HiddenMarkovModel(B.shape[0], B.shape[1], B.shape[2])
    model.set_parameters(pi, A, B)
    return model


def sample_sequences(model: HiddenMarkovModel, n_sequences: int, length: int, seed: int = 0):
    """Draw observation sequences from a model's generative process."""
    rng = np.random.default_rng(seed)
    N, M0, M1 = model.shape
    sequences = []

    for _ in range(n_sequences):
        state = rng.choice(N, p=model.pi)
        sequence = []
        for _ in range(length):
            symbol = rng.choice(M0 * M1, p=model.B[state].ravel())
            sequence.append([int(symbol // M1), int(symbol % M1)])
            state = rng.choice(N, p=model.A[state])
        sequences.append(sequence)

    return sequences


def brute_force_paths(model: HiddenMarkovModel, observation):
    """Joint probability of every state path with the observation, silent steps counting as 1."""
    observation = np.asarray(observation)
    T = len(observation)
    joint = {}

    for path in itertools.product(range(model.n_states), repeat=T):
        probability = model.pi[path[0]]
        for t, state in enumerate(path):
            if t > 0:
                probability *= model.A[path[t - 1], state]
            p, q = observation[t]
            if not is_silent(p, q):
                probability *= model.B[state, p, q]
        joint[path] = probability

    return joint


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def small_model():
    """Three-state model over a 3x3 joint alphabet."""
    rng = np.random.default_rng(7)
    B = rng.random((3, 3, 3)) + 0.05
    B /= B.sum(axis=(1, 2), keepdims=True)

    pi = np.array([0.6, 0.3, 0.1])
    A = np.array([[0.7, 0.2, 0.1],
                  [0.1, 0.8, 0.1],
                  [0.2, 0.3, 0.5]])
    return make_model(pi, A, B)


@pytest.fixture
def observation_with_silence():
    """Short sequence with a silent step in the middle."""
    return [[1, 2], [2, 0], [0, 0], [1, 1], [2, 2]]


@pytest.fixture
def training_corpus(small_model):
    """Sequences sampled from small_model."""
    return sample_sequences(small_model, n_sequences=6, length=25, seed=11)


@pytest.fixture
def perturbed_model(small_model):
    """small_model with flattened parameters, used as an EM starting point."""
    N, M0, M1 = small_model.shape
    pi = np.full(N, 1.0 / N)
    A = 0.5 * small_model.A + 0.5 / N
    B = 0.5 * small_model.B + 0.5 / (M0 * M1)
    return make_model(pi, A, B)


@pytest.fixture(autouse=True)
def clean_config():
    """Restore default configuration around every test."""
    reset_config()
    yield
    reset_config()


def pytest_configure(config):
    """Configure pytest."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
