"""
CovenantWatch Services.

Components:
- covenant_health: Per-covenant evaluation and borrower recalculation
- adverse_events: Event scoring, risk aggregation and impact alerts
- extraction_queue: Bounded, priority-ordered extraction job runner
- covenant_classifier: Validation of AI-extracted covenant candidates
- ports: Collaborator contracts (storage, AI, remote queue)
- gemini / xano: HTTP clients for the hosted AI and remote orchestrator
- resilience: Retry with backoff + circuit breaker
- scheduler: Periodic recalculation, escalation and cleanup
"""
