"""
keycoach: Adaptive weakness detection for touch typing.

Consumes a stream of keystroke events and maintains a statistical model of
per-key and per-key-pair competence:
- history: bounded time series with windowed queries
- ngram: bigram/trigram timing and error statistics
- inference: Beta-Binomial accuracy, Gamma speed, Thompson sampling
- hmm: latent learning-state tracking per key
- ensemble: blended accuracy prediction
- scheduling: practice priority and spaced-repetition intervals
- risk: live error-risk prediction and finger fatigue
- engine: the facade that ties the pieces together
"""

__version__ = "1.0.0"
