"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Send a system prompt plus a JSON payload and return the raw completion.
- Report whether the reasoning service is usable at all (enabled + key present).
"""
