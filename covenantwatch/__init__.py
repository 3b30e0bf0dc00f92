"""
CovenantWatch — Covenant Compliance & Alerting Engine.

Architecture:
    covenantwatch/
    ├── api/             # FastAPI routers (HTTP layer)
    ├── db/              # SQLAlchemy models, engine, repositories
    ├── schemas/         # Pydantic domain and request/response models
    ├── engine/          # Pure calculators (ratios, compliance, trend, metrics)
    ├── alerting/        # Status-transition alerts, escalation
    └── services/        # Orchestration (covenant health, adverse events,
                         # extraction queue, AI + remote clients, scheduler)

Data Flow:
    Financial snapshot → Ratios → Compliance + Trend → Covenant Health
    → Alert Generator (on status change) → Alert sink
    Contract text → Extraction Queue → Validated covenants
    Adverse events → Risk Aggregator → Alerts for high-risk events

Version: 1.0.0
"""

__version__ = "1.0.0"
