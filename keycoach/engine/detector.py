"""
Weakness Engine.

The facade the rest of the application talks to. Keystrokes go in through
``record_keystroke`` (or ``update_key`` for a single observation) and are
applied synchronously to the per-key state, the n-gram tables and the
finger-fatigue model. Reads come out through ``analyze``,
``analyze_all``, ``predict_risk`` and ``get_dashboard_data``.

Pipeline per key:
    KeyState -> Bayesian posterior + HMM distribution + n-gram error rate
             -> ensemble accuracy -> weakness score / priority / schedule
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import ValidationError

from keycoach.ensemble.predictor import EnsemblePredictor
from keycoach.history.store import now_ms
from keycoach.hmm.tracker import (
    DEFAULT_TRANSITION_MATRIX,
    STATE_ORDER,
    TransitionMatrix,
    update_hmm_state,
)
from keycoach.inference.bayes import (
    DEFAULT_SPEED_MS,
    BayesianPriors,
    calculate_bayesian_posterior,
    calculate_speed_estimate,
    thompson_sample,
    update_speed_posterior,
)
from keycoach.inference.sampling import RandomSource, default_rng
from keycoach.ngram.analyzer import NgramAnalyzer, NgramReport
from keycoach.ngram.patterns import WeaknessReport, analyze_weaknesses, same_finger_keys
from keycoach.risk.fatigue import FingerFatigueTracker
from keycoach.risk.predictor import LiveRiskPredictor, PredictionContext, RiskPrediction
from keycoach.scheduling.curve import (
    detect_plateau,
    exponential_rate,
    learning_slope,
    predict_plateau_date,
    window_accuracy,
)
from keycoach.scheduling.priority import (
    calculate_optimal_practice_interval,
    calculate_practice_priority,
    calculate_weakness_score,
    estimate_sessions_to_mastery,
    recent_trend,
)

from .config import EngineConfig
from .debounce import Debouncer
from .models import (
    ContextualInsights,
    CorrelatedKey,
    DashboardData,
    Intervention,
    KeyContext,
    KeyState,
    KeystrokeEvent,
    SessionPosition,
    SessionStats,
    UltimateWeaknessResult,
)
from .snapshot import SNAPSHOT_VERSION, EngineSnapshot, NgramSnapshot

if TYPE_CHECKING:
    from keycoach.persistence.snapshot_store import SnapshotStore

HOUR_MS = 3_600_000
DAY_MS = 86_400_000

DEFAULT_BASELINE = 0.85
DEFAULT_BEST_HOUR = 12
TRANSFER_SAME_FINGER = 0.6
CORRELATION_MIN_OCCURRENCES = 3
INTERVENTION_SMOOTHING = 0.3
MAX_CONFOUNDING_FACTORS = 10


class WeaknessEngine:
    """
    Adaptive weakness detector for one typist.

    Args:
        config: Engine parameters
        rng: Random source for HMM transitions and Thompson sampling
        clock: Millisecond wall clock
        store: Optional snapshot store wiped by ``reset`` and used by
            ``save_in_background``
        transition_matrix: HMM transition matrix
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        rng: RandomSource | None = None,
        clock: Callable[[], float] | None = None,
        store: SnapshotStore | None = None,
        transition_matrix: TransitionMatrix = DEFAULT_TRANSITION_MATRIX,
    ):
        self.config = config or EngineConfig()
        self.transition_matrix = transition_matrix
        self.ensemble = EnsemblePredictor(self.config.weights)
        self.store = store

        self._rng = rng or default_rng()
        self._clock = clock or now_ms
        self._debouncer = Debouncer(self.config.debounce_delay_ms)

        self._states: dict[str, KeyState] = {}
        self._ngrams = NgramAnalyzer(self.config.ngram_max_gap_ms)
        self._fatigue = FingerFatigueTracker()
        self._session = SessionStats()
        self.risk_model = LiveRiskPredictor(rng=self._rng)

    # =========================================================================
    # State access
    # =========================================================================

    def _new_state(self, key: str) -> KeyState:
        cfg = self.config
        return KeyState.new(
            key,
            prior_alpha=cfg.prior_alpha,
            prior_beta=cfg.prior_beta,
            speed_shape=cfg.speed_prior_shape,
            speed_rate=cfg.speed_prior_rate,
            max_size=cfg.history_max_size,
            prune_strategy=cfg.prune_strategy,
            clock=self._clock,
        )

    def _get_or_create(self, key: str) -> KeyState:
        state = self._states.get(key)
        if state is None:
            state = self._states[key] = self._new_state(key)
            logger.debug(f"Tracking new key {key!r}")
        return state

    def tracked_keys(self) -> list[str]:
        return sorted(self._states)

    def get_key_state(self, key: str) -> KeyState | None:
        """Deep copy of a key's state; mutating it does not affect the engine."""
        state = self._states.get(key)
        return state.copy() if state else None

    def get_ngram_report(self, min_attempts: int | None = None) -> NgramReport:
        return self._ngrams.get_report(
            self.config.ngram_min_attempts if min_attempts is None else min_attempts
        )

    def get_ngram_stats(self) -> dict[str, int]:
        return self._ngrams.get_stats()

    @property
    def session(self) -> SessionStats:
        return self._session

    # =========================================================================
    # Updates (hot path)
    # =========================================================================

    def start_session(self, expected_length: int | None = None) -> None:
        """Begin a new exercise: fresh session counters and n-gram buffer."""
        self._session = SessionStats(expected_length=expected_length or None)
        self._ngrams.reset_sequence()
        self._fatigue.reset()
        logger.info(f"Session started (expected_length={expected_length})")

    def end_session(self) -> dict[str, float]:
        """Close the current session and return its summary."""
        session = self._session
        summary = {
            "keystrokes": session.keystrokes,
            "accuracy": session.accuracy,
            "wpm": session.wpm,
            "duration_minutes": session.duration_minutes,
        }
        self._session = SessionStats()
        self._ngrams.reset_sequence()
        logger.info(
            f"Session ended: {session.keystrokes} keystrokes, "
            f"{session.accuracy:.1f}% accuracy, {session.wpm:.1f} WPM"
        )
        return summary

    def record_keystroke(self, event: KeystrokeEvent | Mapping[str, Any]) -> None:
        """Feed one keystroke event from the capture loop into every model."""
        try:
            ev = event if isinstance(event, KeystrokeEvent) else KeystrokeEvent.model_validate(event)
        except ValidationError as exc:
            logger.debug(f"Dropping malformed keystroke event ({exc.error_count()} errors)")
            return

        session = self._session
        previous_ts = session.last_timestamp
        if session.started_at is None:
            session.started_at = ev.timestamp

        speed: float | None = ev.hesitation_ms if ev.hesitation_ms > 0 else None
        if speed is None and previous_ts is not None:
            gap = ev.timestamp - previous_ts
            if 0 < gap <= self.config.ngram_max_gap_ms:
                speed = gap

        adjacent = ev.previous_key or (session.recent_keys[-1] if session.recent_keys else None)
        context = KeyContext(
            timestamp=ev.timestamp,
            session_position=session.position(self.config.nominal_session_minutes),
            recent_errors=session.recent_errors,
            adjacent_key=adjacent,
        )

        self._ngrams.record_keystroke(ev.expected, ev.timestamp, ev.is_correct)
        self._fatigue.record_keystroke(ev.expected, ev.timestamp, not ev.is_correct)
        self.update_key(ev.expected, ev.is_correct, speed, context)
        session.register(ev.expected, ev.is_correct, ev.timestamp)

    def update_key(
        self,
        key: str,
        was_correct: bool,
        speed_ms: float | None = None,
        context: KeyContext | Mapping[str, Any] | None = None,
    ) -> None:
        """
        Apply one observation to a key's state.

        Never raises on malformed input: missing or invalid context fields
        fall back to defaults and an unusable latency is simply not recorded.
        """
        if not isinstance(key, str) or not key:
            logger.debug(f"Ignoring update for invalid key {key!r}")
            return

        correct = _outcome_or_none(was_correct)
        if correct is None:
            logger.debug(f"Ignoring update for {key!r} with unreadable outcome {was_correct!r}")
            return

        ctx = KeyContext.coerce(context)
        ts = ctx.timestamp if ctx.timestamp is not None else self._clock()
        speed = _positive_or_none(speed_ms)
        state = self._get_or_create(key)

        avg_speed = state.speeds.mean() if state.speeds else (speed or DEFAULT_SPEED_MS)

        # 1. Beta-Binomial accuracy
        if correct:
            state.alpha_post += 1
            state.consecutive_correct += 1
        else:
            state.beta_post += 1
            state.consecutive_correct = 0
        state.outcomes.add(correct, ts)

        # 2. Gamma speed model
        if speed is not None:
            state.speeds.add(speed, ts)
            state.shape_param, state.rate_param = update_speed_posterior(
                state.shape_param, state.rate_param, speed
            )

        # 3. Contextual histograms
        hour = ctx.hour if ctx.hour is not None else _hour_of(ts)
        _bump(state.time_of_day, hour, correct)
        _bump(state.session_position, min(4, int(ctx.session_position * 5)), correct)
        if ctx.adjacent_key:
            counts = state.adjacent_keys.setdefault(ctx.adjacent_key, [0, 0])
            counts[0] += 1
            if not correct:
                counts[1] += 1

        # 4. HMM
        transition = update_hmm_state(
            state.hmm_state,
            correct,
            speed if speed is not None else avg_speed,
            avg_speed,
            self._rng,
            self.transition_matrix,
        )
        state.hmm_state = transition.next_state
        state.transition_probs = transition.probabilities

        # 5. Learning curve and plateau
        window = self.config.learning_curve_window
        sample = window_accuracy([bool(e.value) for e in state.outcomes.get_last(window)], window)
        if sample is not None:
            state.learning_curve.append(sample)
            excess = len(state.learning_curve) - self.config.learning_curve_max_points
            if excess > 0:
                del state.learning_curve[:excess]
        state.plateau_detected = detect_plateau(state.learning_curve)

        # 6. Finger load: attempts in the last hour, 100/hour = 1.0
        recent = sum(1 for e in state.outcomes.get_last(100) if 0 <= ts - e.timestamp < HOUR_MS)
        state.finger_load = min(1.0, recent / 100)

        if not correct:
            self._note_confounders(state, ctx, speed, avg_speed)

        # 7. Spaced repetition
        mean = state.alpha_post / (state.alpha_post + state.beta_post)
        state.optimal_practice_interval = calculate_optimal_practice_interval(
            mean, state.consecutive_correct, self.config.base_interval_days
        )
        state.last_practiced = ts if state.last_practiced is None else max(state.last_practiced, ts)

    def _note_confounders(
        self,
        state: KeyState,
        ctx: KeyContext,
        speed: float | None,
        avg_speed: float,
    ) -> None:
        """Tag conditions present when an error happened."""
        tags = []
        if state.finger_load > 0.7 or self._fatigue.overall_fatigue >= 50:
            tags.append("fatigue")
        if ctx.session_position >= 0.8:
            tags.append("late_session")
        if ctx.recent_errors >= 3:
            tags.append("error_burst")
        if speed is not None and speed > 2 * avg_speed:
            tags.append("hesitation")

        for tag in tags:
            if tag in state.confounding_factors:
                state.confounding_factors.remove(tag)
            state.confounding_factors.append(tag)
        excess = len(state.confounding_factors) - MAX_CONFOUNDING_FACTORS
        if excess > 0:
            del state.confounding_factors[:excess]

    def record_intervention_outcome(self, key: str, intervention: str, accuracy_delta: float) -> None:
        """Smooth an observed accuracy change into the key's intervention effects."""
        state = self._states.get(key)
        delta = _finite_or_none(accuracy_delta)
        if state is None or delta is None:
            logger.debug(f"Ignoring intervention outcome for {key!r}")
            return
        previous = state.intervention_effects.get(intervention)
        state.intervention_effects[intervention] = (
            delta if previous is None else previous + INTERVENTION_SMOOTHING * (delta - previous)
        )

    # =========================================================================
    # Analysis (pure reads)
    # =========================================================================

    def analyze(self, key: str) -> UltimateWeaknessResult:
        """
        Full weakness analysis for one key.

        Does not mutate engine state. An unknown key is analyzed against the
        neutral prior without being tracked.
        """
        state = self._states.get(key)
        if state is None:
            state = self._new_state(key)
        return self._analyze_state(state)

    def analyze_all(self, min_attempts: int | None = None) -> list[UltimateWeaknessResult]:
        """Analyses of every key with enough attempts, highest priority first."""
        threshold = self.config.min_analyze_attempts if min_attempts is None else min_attempts
        results = [
            self._analyze_state(state)
            for state in self._states.values()
            if state.total_attempts >= threshold
        ]
        return sorted(results, key=lambda r: r.practice_priority, reverse=True)

    def analyze_debounced(self, key: str, delay_ms: float | None = None) -> asyncio.Future:
        """
        Coalesced ``analyze``: calls for the same key within ``delay_ms``
        collapse into one run and all callers get its result.

        Must be called from a running event loop.
        """
        delay = self.config.debounce_delay_ms if delay_ms is None else delay_ms
        return self._debouncer.call(key, lambda: self.analyze(key), delay)

    def select_practice_keys(self, n: int = 5, min_attempts: int = 1) -> list[str]:
        """Thompson-sampled practice set: keys with the lowest sampled accuracy."""
        samples = []
        for key, state in self._states.items():
            if state.total_attempts < min_attempts:
                continue
            sampled = thompson_sample(
                BayesianPriors(state.alpha_prior, state.beta_prior),
                state.total_successes,
                state.total_failures,
                self._rng,
            )
            samples.append((sampled, key))
        samples.sort()
        return [key for _, key in samples[:n]]

    def weakness_report(self, min_attempts: int | None = None) -> WeaknessReport:
        """Keyboard-pattern weakness report over all tracked keys."""
        per_key = {
            key: (state.total_attempts, state.total_failures)
            for key, state in self._states.items()
        }
        threshold = self.config.ngram_min_attempts if min_attempts is None else min_attempts
        return analyze_weaknesses(per_key, self._ngrams, threshold)

    def _analyze_state(self, state: KeyState) -> UltimateWeaknessResult:
        cfg = self.config
        now = self._clock()
        now_dt = _to_datetime(now)

        priors = BayesianPriors(state.alpha_prior, state.beta_prior)
        successes = state.alpha_post - state.alpha_prior
        failures = state.beta_post - state.beta_prior
        posterior = calculate_bayesian_posterior(priors, successes, failures, cfg.credible_level)

        breakdown = self.ensemble.predict(
            posterior.mean,
            state.transition_probs,
            self._ngrams.error_rate_for_key(state.key),
        )
        speed = calculate_speed_estimate(
            state.shape_param, state.rate_param, len(state.speeds), cfg.credible_level
        )
        avg_speed = state.speeds.mean() if state.speeds else DEFAULT_SPEED_MS

        weakness = calculate_weakness_score(
            breakdown.ensemble,
            self._user_baseline(),
            posterior.variance,
            avg_speed,
            state.hmm_state,
            state.plateau_detected,
        )

        outcomes = [bool(e.value) for e in state.outcomes.get_last(2 * cfg.trend_window)]
        trend = recent_trend(outcomes, cfg.trend_window)
        days_idle = 0.0
        if state.last_practiced is not None:
            days_idle = max(0.0, (now - state.last_practiced) / DAY_MS)
        priority = calculate_practice_priority(
            breakdown.ensemble, posterior.confidence, state.hmm_state, trend, days_idle
        )

        anchor = state.last_practiced if state.last_practiced is not None else now
        next_practice = _to_datetime(anchor) + timedelta(days=state.optimal_practice_interval)

        slope = learning_slope(state.learning_curve)
        current = state.learning_curve[-1] if state.learning_curve else posterior.mean
        sessions = estimate_sessions_to_mastery(
            current, exponential_rate(slope, current), cfg.mastery_threshold
        )

        insights = self._contextual_insights(state)
        interventions = self._recommend_interventions(state, weakness, insights, avg_speed, now_dt)

        return UltimateWeaknessResult(
            key=state.key,
            attempts=state.total_attempts,
            accuracy_estimate=breakdown.ensemble,
            accuracy_ci=posterior.ci,
            speed_estimate=speed.estimate,
            speed_ci=speed.ci,
            current_state=state.hmm_state,
            state_probabilities=dict(state.transition_probs),
            is_weak=weakness > cfg.weakness_threshold,
            weakness_score=weakness,
            confidence=posterior.confidence,
            practice_priority=priority,
            optimal_next_practice=next_practice,
            estimated_sessions_to_mastery=sessions,
            best_practice_time=insights.best_time,
            optimal_session_position=insights.optimal_position,
            correlated_keys=insights.correlated_keys,
            recommended_interventions=interventions,
            ensemble=breakdown,
            learning_rate=slope,
            expected_plateau_date=predict_plateau_date(
                state.learning_curve,
                state.plateau_detected,
                state.optimal_practice_interval,
                now_dt,
                cfg.mastery_threshold,
            ),
            transfer_learning_potential={
                other: TRANSFER_SAME_FINGER for other in same_finger_keys(state.key)
            },
            sampled_accuracy=thompson_sample(priors, successes, failures, self._rng),
        )

    def _user_baseline(self) -> float:
        """Pooled posterior accuracy across all keys."""
        total_alpha = sum(s.alpha_post for s in self._states.values())
        total_beta = sum(s.beta_post for s in self._states.values())
        if total_alpha + total_beta <= 0:
            return DEFAULT_BASELINE
        return total_alpha / (total_alpha + total_beta)

    def _contextual_insights(self, state: KeyState) -> ContextualInsights:
        best_time = DEFAULT_BEST_HOUR
        if state.time_of_day:
            best_time = max(
                sorted(state.time_of_day),
                key=lambda hour: _smoothed_rate(state.time_of_day[hour]),
            )

        def bucket_rate(bucket: int) -> float:
            counts = state.session_position.get(bucket)
            return _smoothed_rate(counts) if counts else 0.5

        early, middle, late = bucket_rate(0), bucket_rate(2), bucket_rate(4)
        position: SessionPosition = "early"
        if middle > early and middle > late:
            position = "middle"
        elif late > early and late > middle:
            position = "late"

        correlated = sorted(
            (
                CorrelatedKey(key=other, correlation=errors / seen, occurrences=seen)
                for other, (seen, errors) in state.adjacent_keys.items()
                if seen >= CORRELATION_MIN_OCCURRENCES and errors > 0
            ),
            key=lambda c: (c.correlation, c.occurrences),
            reverse=True,
        )
        return ContextualInsights(best_time, position, tuple(correlated[:5]))

    def _recommend_interventions(
        self,
        state: KeyState,
        weakness: float,
        insights: ContextualInsights,
        avg_speed: float,
        now: datetime,
    ) -> tuple[Intervention, ...]:
        candidates: list[Intervention] = []

        if avg_speed < 150 and weakness > 50:
            candidates.append(Intervention(
                "slow_down", "Practice at 70% speed to build accuracy first", 15, 0.8
            ))

        hour_gap = abs(now.hour - insights.best_time)
        hour_gap = min(hour_gap, 24 - hour_gap)
        if state.time_of_day and hour_gap > 3 and weakness > 40:
            candidates.append(Intervention(
                "best_time",
                f"Practice at {_format_hour(insights.best_time)} for 20% better performance",
                20,
                0.7,
            ))

        if weakness > 60:
            candidates.append(Intervention(
                "isolate", "Practice this key in isolation for 5 minutes", 25, 0.9
            ))

        if state.finger_load > 0.7:
            candidates.append(Intervention(
                "break", "Take a 10-minute break - finger fatigue detected", 10, 0.85
            ))

        if insights.correlated_keys and insights.correlated_keys[0].correlation > 0.3:
            linked = insights.correlated_keys[0].key
            candidates.append(Intervention(
                "adjacent", f"Practice with adjacent key '{linked}' - they're linked", 18, 0.75
            ))

        # Blend in effects observed for this key
        adjusted = []
        for item in candidates:
            observed = state.intervention_effects.get(item.name)
            if observed is not None:
                item = Intervention(
                    item.name,
                    item.intervention,
                    max(0.0, (item.expected_improvement + observed * 100) / 2),
                    min(0.95, item.confidence + 0.05),
                )
            adjusted.append(item)

        return tuple(sorted(adjusted, key=lambda i: i.expected_value, reverse=True))

    # =========================================================================
    # Live risk (hot path)
    # =========================================================================

    def predict_risk(
        self,
        next_char: str,
        previous_key: str | None = None,
        wpm: float | None = None,
        accuracy: float | None = None,
        hour: int | None = None,
    ) -> RiskPrediction:
        """
        Error probability for the upcoming keystroke.

        Uses only O(1) lookups (posterior mean, one bigram) so it is safe to
        call from the keystroke handler.
        """
        session = self._session
        previous = previous_key
        if previous is None and session.recent_keys:
            previous = session.recent_keys[-1]

        state = self._states.get(next_char)
        if state is not None:
            mean = state.alpha_post / (state.alpha_post + state.beta_post)
        else:
            mean = self.config.prior_alpha / (self.config.prior_alpha + self.config.prior_beta)

        ngram_difficulty = 0.0
        if previous:
            bigram = self._ngrams.get_bigram_stats(previous + next_char)
            if bigram is not None:
                ngram_difficulty = bigram.error_rate * 100

        history = list(reversed(session.recent_keys))
        if previous_key is not None:
            history = [previous_key]

        context = PredictionContext(
            current_char=next_char,
            previous_chars=history,
            current_wpm=session.wpm if wpm is None else wpm,
            current_accuracy=session.accuracy if accuracy is None else accuracy,
            time_of_day=_to_datetime(self._clock()).hour if hour is None else hour,
            session_duration=session.duration_minutes,
            recent_errors=session.recent_errors,
            key_difficulty=(1.0 - mean) * 100,
            ngram_difficulty=ngram_difficulty,
        )
        return self.risk_model.predict(context)

    # =========================================================================
    # Dashboard
    # =========================================================================

    def get_dashboard_data(self, top_n: int = 5) -> DashboardData:
        """Aggregate summary for UIs; derived, never authoritative."""
        now = _to_datetime(self._clock())
        results = self.analyze_all(min_attempts=1)

        total_attempts = sum(s.total_attempts for s in self._states.values())
        total_successes = sum(s.total_successes for s in self._states.values())

        distribution = {state.value: 0 for state in STATE_ORDER}
        for state in self._states.values():
            distribution[state.hmm_state.value] += 1

        return DashboardData(
            tracked_keys=len(self._states),
            total_attempts=total_attempts,
            overall_accuracy=total_successes / total_attempts if total_attempts else 0.0,
            state_distribution=distribution,
            weakest_keys=sorted(results, key=lambda r: r.weakness_score, reverse=True)[:top_n],
            due_keys=sorted(r.key for r in results if r.optimal_next_practice <= now),
            ngram_report=self.get_ngram_report(),
            fatigue=self._fatigue.get_dashboard_data(),
            session_keystrokes=self._session.keystrokes,
        )

    # =========================================================================
    # Lifecycle and persistence
    # =========================================================================

    def _replace_all(
        self,
        states: dict[str, KeyState],
        ngrams: NgramAnalyzer,
        fatigue: FingerFatigueTracker,
        risk_model: LiveRiskPredictor,
    ) -> None:
        self._debouncer.cancel_all()
        self._states, self._ngrams, self._fatigue, self.risk_model, self._session = (
            states,
            ngrams,
            fatigue,
            risk_model,
            SessionStats(),
        )

    def _clear_memory(self) -> None:
        self._replace_all(
            {},
            NgramAnalyzer(self.config.ngram_max_gap_ms),
            FingerFatigueTracker(),
            LiveRiskPredictor(rng=self._rng),
        )

    def reset(self) -> None:
        """Drop every tracked entity in one step and wipe the stored snapshot."""
        self._clear_memory()
        if self.store is not None:
            self.store.clear()
        logger.info("Weakness engine reset")

    def to_snapshot(self) -> EngineSnapshot:
        return EngineSnapshot(
            version=SNAPSHOT_VERSION,
            saved_at=self._clock(),
            key_states=[(key, state.to_snapshot()) for key, state in self._states.items()],
            ngrams=NgramSnapshot.model_validate(self._ngrams.to_snapshot()),
            fatigue=self._fatigue.to_snapshot(),
            risk_model=self.risk_model.to_snapshot(),
        )

    def from_snapshot(self, snapshot: EngineSnapshot) -> bool:
        """
        Replace engine state with a snapshot.

        Returns:
            False (leaving an empty engine) if the snapshot version is unknown
            or its contents cannot be rebuilt into engine state
        """
        if snapshot.version != SNAPSHOT_VERSION:
            logger.warning(
                f"Unsupported snapshot version {snapshot.version} "
                f"(expected {SNAPSHOT_VERSION}); starting empty"
            )
            self._clear_memory()
            return False

        cfg = self.config
        try:
            states = {
                key: KeyState.from_snapshot(
                    key, data, cfg.history_max_size, cfg.prune_strategy, self._clock
                )
                for key, data in snapshot.key_states
            }
            ngrams = NgramAnalyzer(cfg.ngram_max_gap_ms)
            ngrams.from_snapshot(snapshot.ngrams.model_dump())
            fatigue = FingerFatigueTracker()
            fatigue.from_snapshot(snapshot.fatigue.model_dump())
            risk_model = LiveRiskPredictor(rng=self._rng)
            risk_model.from_snapshot(snapshot.risk_model.model_dump())
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(f"Discarding inconsistent snapshot: {exc}; starting empty")
            self._clear_memory()
            return False

        self._replace_all(states, ngrams, fatigue, risk_model)
        logger.info(f"Loaded snapshot with {len(states)} keys")
        return True

    def serialize(self) -> str:
        """JSON snapshot of the engine."""
        return self.to_snapshot().model_dump_json()

    def deserialize(self, blob: str | bytes | Mapping[str, Any] | None) -> bool:
        """
        Load a serialized snapshot.

        Malformed or absent data leaves an empty engine and returns False.
        """
        try:
            if isinstance(blob, (str, bytes)):
                snapshot = EngineSnapshot.model_validate_json(blob)
            else:
                snapshot = EngineSnapshot.model_validate(blob)
        except ValidationError as exc:
            logger.warning(f"Discarding unreadable snapshot ({exc.error_count()} errors)")
            self._clear_memory()
            return False
        return self.from_snapshot(snapshot)

    def save_in_background(self) -> None:
        """Fire-and-forget persistence through the configured store."""
        if self.store is None:
            logger.debug("No snapshot store configured; skipping save")
            return
        self.store.save_in_background(self.to_snapshot())


# =============================================================================
# Helpers
# =============================================================================


def _bump(histogram: dict[Any, list[int]], bucket: Any, success: bool) -> None:
    counts = histogram.setdefault(bucket, [0, 0])
    counts[0] += 1
    if success:
        counts[1] += 1


def _smoothed_rate(counts: list[int]) -> float:
    """Laplace-smoothed success rate of ``[attempts, successes]``."""
    attempts, successes = counts
    return (successes + 1) / (attempts + 2)


def _finite_or_none(value: Any) -> float | None:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _positive_or_none(value: Any) -> float | None:
    number = _finite_or_none(value)
    return number if number is not None and number > 0 else None


_TRUE_WORDS = frozenset({"true", "1", "yes", "y", "correct"})
_FALSE_WORDS = frozenset({"false", "0", "no", "n", "incorrect", ""})


def _outcome_or_none(value: Any) -> bool | None:
    """Read an outcome flag; strings like "false" are parsed, not truth-tested."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
        return None
    number = _finite_or_none(value)
    if number is None:
        return None
    return number != 0


def _to_datetime(ms: float) -> datetime:
    try:
        return datetime.fromtimestamp(ms / 1000)
    except (OverflowError, OSError, ValueError):
        return datetime.now()


def _hour_of(ms: float) -> int:
    return _to_datetime(ms).hour


def _format_hour(hour: int) -> str:
    period = "PM" if hour >= 12 else "AM"
    display = hour % 12 or 12
    return f"{display}:00 {period}"
