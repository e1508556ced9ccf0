"""
Place search engine.

Responsibilities:
- Map search intents onto whatever argument names the remote tools declare.
- Choose between nearby and text search and run the fallback cascade.
- Rank candidates (LLM-backed, with a deterministic fallback).
- Drop geographically implausible results before they reach the caller.
"""
