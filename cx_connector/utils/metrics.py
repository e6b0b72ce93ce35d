# /cx_connector/utils/metrics.py

from prometheus_client import Counter

# Prometheus metrics of the crawler and the API client, kept in one place.

# Crawl Metrics
crawl_terminations_counter = Counter('cx_crawl_terminations_total', 'Finished crawl branches', ['reason'])
unresolved_intent_counter = Counter('cx_unresolved_intent_references_total', 'Transition routes referencing unknown intents')

# API Metrics
graph_fetch_counter = Counter('cx_graph_fetch_total', 'Dialogflow CX API calls', ['kind', 'status'])
rate_limiter_waits_counter = Counter('cx_rate_limiter_waits_total', 'Calls delayed by the API rate limiter')

# Performance Metrics
node_cache_operations = Counter('cx_node_cache_operations_total', 'Flow and page cache lookups', ['kind', 'status'])
