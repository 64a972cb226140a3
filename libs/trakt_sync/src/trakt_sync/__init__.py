"""MAL → Trakt mapping sync.

This library contains the incremental enrichment pipeline:
- Token-bucket limiting and a retrying HTTP transport
- Trakt and Letterboxd fetchers backed by the response cache
- Override application and reconciliation with previously saved output
"""

__all__ = ["pipeline", "reconciler"]
