"""
HMM State Tracker.

Each key sits in one of four latent learning states. Every observation
(correct or not, faster or slower than usual) scales the current state's
transition row by an emission adjustment, renormalizes it, and draws the
next state from that distribution with one uniform number from the
caller's random source.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from keycoach.inference.sampling import RandomSource


class HMMState(str, Enum):
    """Latent learning state of a key."""

    LEARNING = "learning"
    PROFICIENT = "proficient"
    MASTERED = "mastered"
    REGRESSING = "regressing"

    @classmethod
    def parse(cls, value: str | HMMState | None) -> HMMState:
        """Lenient conversion used when loading stored state."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.LEARNING

    @property
    def color(self) -> str:
        """Rich color for CLI display."""
        return {
            HMMState.LEARNING: "yellow",
            HMMState.PROFICIENT: "cyan",
            HMMState.MASTERED: "green",
            HMMState.REGRESSING: "red",
        }[self]


STATE_ORDER: tuple[HMMState, ...] = (
    HMMState.LEARNING,
    HMMState.PROFICIENT,
    HMMState.MASTERED,
    HMMState.REGRESSING,
)

TransitionMatrix = dict[HMMState, dict[HMMState, float]]

DEFAULT_TRANSITION_MATRIX: TransitionMatrix = {
    HMMState.LEARNING: {
        HMMState.LEARNING: 0.70,
        HMMState.PROFICIENT: 0.25,
        HMMState.MASTERED: 0.03,
        HMMState.REGRESSING: 0.02,
    },
    HMMState.PROFICIENT: {
        HMMState.LEARNING: 0.05,
        HMMState.PROFICIENT: 0.70,
        HMMState.MASTERED: 0.20,
        HMMState.REGRESSING: 0.05,
    },
    HMMState.MASTERED: {
        HMMState.LEARNING: 0.01,
        HMMState.PROFICIENT: 0.09,
        HMMState.MASTERED: 0.85,
        HMMState.REGRESSING: 0.05,
    },
    HMMState.REGRESSING: {
        HMMState.LEARNING: 0.20,
        HMMState.PROFICIENT: 0.30,
        HMMState.MASTERED: 0.10,
        HMMState.REGRESSING: 0.40,
    },
}

# Expected accuracy of a key in each state
STATE_ACCURACY: dict[HMMState, float] = {
    HMMState.LEARNING: 0.65,
    HMMState.PROFICIENT: 0.85,
    HMMState.MASTERED: 0.95,
    HMMState.REGRESSING: 0.55,
}


@dataclass(frozen=True)
class HMMTransition:
    """Result of one observation step."""

    next_state: HMMState
    probabilities: dict[HMMState, float]


def adjusted_transition_probs(
    current: HMMState,
    was_correct: bool,
    speed: float,
    avg_speed: float,
    matrix: TransitionMatrix = DEFAULT_TRANSITION_MATRIX,
) -> dict[HMMState, float]:
    """Emission-scaled, normalized next-state distribution."""
    row = matrix[current]
    emission_bonus = 1.2 if was_correct else 0.5
    speed_factor = 1.1 if speed < avg_speed else 0.9

    adjusted = {
        HMMState.LEARNING: row[HMMState.LEARNING] * (0.8 if was_correct else 1.3),
        HMMState.PROFICIENT: row[HMMState.PROFICIENT] * emission_bonus,
        HMMState.MASTERED: row[HMMState.MASTERED] * emission_bonus * speed_factor,
        HMMState.REGRESSING: row[HMMState.REGRESSING] * (0.7 if was_correct else 1.5),
    }

    total = sum(adjusted.values())
    if total <= 0:
        return {state: 1.0 / len(STATE_ORDER) for state in STATE_ORDER}
    return {state: adjusted[state] / total for state in STATE_ORDER}


def update_hmm_state(
    current: HMMState,
    was_correct: bool,
    speed: float,
    avg_speed: float,
    rng: RandomSource,
    matrix: TransitionMatrix = DEFAULT_TRANSITION_MATRIX,
) -> HMMTransition:
    """
    Advance one key's latent state by a single observation.

    Args:
        current: State before the observation
        was_correct: Whether the keystroke was correct
        speed: Latency of this keystroke (ms)
        avg_speed: Typical latency for the key (ms)
        rng: Source of the one uniform draw
        matrix: Transition matrix (row = current state)

    Returns:
        HMMTransition with the sampled next state and the distribution it
        was drawn from
    """
    probs = adjusted_transition_probs(current, was_correct, speed, avg_speed, matrix)

    draw = rng.random()
    cumulative = 0.0
    for state in STATE_ORDER:
        cumulative += probs[state]
        if draw < cumulative:
            return HMMTransition(state, probs)

    return HMMTransition(current, probs)


def default_state_probabilities(state: HMMState = HMMState.LEARNING) -> dict[HMMState, float]:
    """The unadjusted transition row for ``state``."""
    return dict(DEFAULT_TRANSITION_MATRIX[state])


def expected_state_accuracy(probabilities: dict[HMMState, float]) -> float:
    """Accuracy implied by a distribution over states."""
    total = sum(probabilities.values())
    if total <= 0:
        return STATE_ACCURACY[HMMState.LEARNING]
    return sum(STATE_ACCURACY[s] * p for s, p in probabilities.items()) / total
