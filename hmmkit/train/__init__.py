"""
Training module.

Supervised counting, Baum-Welch re-estimation and model persistence.
"""

from .supervised import SupervisedTrainer, learn
from .baum_welch import BaumWelchTrainer, update_model
from .persistence import ModelPersistence

__all__ = [
    "SupervisedTrainer",
    "learn",
    "BaumWelchTrainer",
    "update_model",
    "ModelPersistence"
]
