"""
Core constants for the piiscan extraction engine.

All magic numbers, timeouts, and limits defined here.
Import from this module rather than hardcoding values.
"""

__all__ = [
    # Pipeline
    "PARALLEL_TEXT_THRESHOLD",
    "PARALLEL_MATCHER_THRESHOLD",
    "CONTEXT_CACHE_MIN_MATCHES",
    "MATCHER_TIMEOUT",
    # Context
    "SENTENCE_TERMINATORS",
    "CONTEXT_WORD_WINDOW",
    "VALIDATION_CONTEXT_WINDOW",
    # Validation
    "DEFAULT_VALIDATION_TIMEOUT",
    "DEFAULT_MIN_CONFIDENCE",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_BACKOFF_SECONDS",
    "CANCEL_POLL_INTERVAL",
    "MAX_SCORER_WORKERS",
    # LLM
    "DEFAULT_OLLAMA_URL",
    "DEFAULT_OPENAI_URL",
    "DEFAULT_OLLAMA_MODEL",
    "DEFAULT_OPENAI_MODEL",
]

# --- PIPELINE ---
# Parallel mode needs BOTH: text longer than this many characters...
PARALLEL_TEXT_THRESHOLD = 10_000
# ...and more than this many resolved matchers.
PARALLEL_MATCHER_THRESHOLD = 8
# A matcher with at least this many matches switches to the amortized context cache
CONTEXT_CACHE_MIN_MATCHES = 10
# Upper bound (seconds) on waiting for all workers of one parallel run
MATCHER_TIMEOUT = 300.0

# --- CONTEXT ---
SENTENCE_TERMINATORS = frozenset(".!?")
CONTEXT_WORD_WINDOW = 8          # Words kept on each side in the fallback window
VALIDATION_CONTEXT_WINDOW = 100  # Chars on each side when no context was recorded

# --- VALIDATION ---
DEFAULT_VALIDATION_TIMEOUT = 30.0
DEFAULT_MIN_CONFIDENCE = 0.7
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 1.0    # Linear: attempt * backoff
CANCEL_POLL_INTERVAL = 0.05      # Cancellation check granularity while blocked on a worker
MAX_SCORER_WORKERS = 4

# --- LLM ---
DEFAULT_OLLAMA_URL = "http://localhost:11434"
DEFAULT_OPENAI_URL = "https://api.openai.com/v1"
DEFAULT_OLLAMA_MODEL = "qwen2.5:3b"
DEFAULT_OPENAI_MODEL = "gpt-4o-mini"
