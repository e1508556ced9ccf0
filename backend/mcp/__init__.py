"""
Remote tool-calling layer.

Responsibilities:
- Speak JSON-RPC (`tools/list`, `tools/call`) to the configured places endpoint.
- Cache the advertised tool definitions and their capability resolution.
- Turn raw tool results into candidate lists, success flags and page tokens.
"""
