"""
Keyword Foundry Gateway

Backend for SEO keyword research built around a single DataForSEO gateway:
1. Retry/backoff with Retry-After support and 402 short-circuit
2. Usage metering for every upstream call
3. Polling of long-running on-page crawl tasks
4. Content-hash result cache and per-caller quota gate
5. Partial-failure composition across independent upstream calls
"""

__version__ = "0.1.0"
