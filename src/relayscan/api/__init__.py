"""API module for relayscan.

HTTP surface for probe workers and operators:
- Hands out the next relay pair per slice
- Reports slice progress and the current bandwidth picture
- Forbidden: probing, descriptor ingestion, worker lifecycle
"""
