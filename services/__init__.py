"""
Analytics Services

- quote_cache: per-data-class TTL/LRU market data cache
- rate_limiter: per-venue exponential backoff and venue-grouped batches
- arbitrage_scanner: cross-venue opportunity detection, scoring and ranking
"""
