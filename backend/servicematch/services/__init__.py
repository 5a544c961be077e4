# Services package init
"""
ServiceMatch Backend - Services Layer
======================================

Service Inventory:
    - EmbeddingProvider (abstract): text → vector contract
        - GeminiEmbeddingProvider: Google text-embedding-004 (+ CircuitBreaker)
        - HashingEmbeddingProvider: deterministic local vectors (development)
    - EmbeddingRateLimiter: process-wide spacing and daily budget for provider calls
    - EmbeddingStore: writes/reads vector columns, lazy regeneration
    - similarity_search: pgvector cosine ranking with filters and totals
    - matching_policy: thresholds and selection rules
    - MatchingService: search / similar / matching-for-request use cases
    - NotificationFanout + publishers: notify high-confidence providers
    - CatalogService, ServiceRequestService: entity write paths
    - BackfillJob: embeds services that have no vectors yet
"""
