"""Latent learning-state tracking per key."""

from .tracker import (
    DEFAULT_TRANSITION_MATRIX,
    STATE_ACCURACY,
    STATE_ORDER,
    HMMState,
    HMMTransition,
    adjusted_transition_probs,
    default_state_probabilities,
    expected_state_accuracy,
    update_hmm_state,
)

__all__ = [
    "DEFAULT_TRANSITION_MATRIX",
    "STATE_ACCURACY",
    "STATE_ORDER",
    "HMMState",
    "HMMTransition",
    "adjusted_transition_probs",
    "default_state_probabilities",
    "expected_state_accuracy",
    "update_hmm_state",
]
