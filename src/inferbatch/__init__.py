"""inferbatch — resumable, rate-limited batch inference.

Sends every line of an input file to a remote inference service with
bounded concurrency, a global request-rate ceiling and per-line retry,
and checkpoints each parsed result so interrupted runs resume where
they stopped.
"""

__version__ = "1.0.0"
