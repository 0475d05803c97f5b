"""
Noor Q&A service.

Visitors submit questions, an authenticated administrator answers, edits or
deletes them, and the public reads the answered archive. All state (questions,
login sessions, rate-limit counters) lives in a remote key-value store so the
service can run in stateless, per-request environments.
"""
