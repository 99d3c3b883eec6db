"""Shop listing fetch-and-aggregate service.

Fetches a shop listing page, fans out to the product detail pages it links
to under a bounded-concurrency gate, and merges the results with per-item
failure isolation and a time-to-live response cache.
"""

__version__ = "1.0.0"
