"""
Upstream data ingestion.

Submodules:
  feed_client — ``FeedClient`` (httpx) and ``FixtureFeedClient`` for the
                paginated analyst-action feed.
"""
