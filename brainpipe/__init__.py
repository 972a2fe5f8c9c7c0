"""
Brainpipe - Brain Dump to Task Database Sync

Turns timestamped markdown notes into deduplicated tasks in a Notion database:
- Line-preserving chunking of modified notes
- LLM task extraction with rate-limit backoff and JSON repair
- Content-addressed dedup ledger with bounded growth
- Idempotent Notion upsert keyed on the task hash
"""

__version__ = "1.0.0"
