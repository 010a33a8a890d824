"""Role-based request orchestrator for interchangeable LLM backends.

A call names a role (``primary``, ``research`` or ``fallback``) rather than a
backend. The orchestrator expands the role into an ordered fallback sequence
and, for each role in turn, resolves the configured backend/model, looks up the
backend's implementation of the requested operation, resolves its credential
and runs the call under a bounded retry policy with exponential backoff.

- Roles without configuration, backends lacking the operation and missing
  credentials skip the role without contacting anything.
- Transient failures (rate limits, timeouts, network errors, 429/5xx) are
  retried within the role; other failures abandon the role immediately.
- The first success wins. When every role fails, the most recent error is
  raised unchanged so callers handle a single exception type per failure.

Nothing here holds state between calls: configuration is re-read per call and
every request object is built fresh.
"""
