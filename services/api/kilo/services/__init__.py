"""Business logic and integrations.

Services are organized into:
- core/: Orchestration (knowledge bases, documents, chat)
- providers/: External API wrappers (gemini)
- utils/: Internal utilities (usage ledger, quotas, rate limiter, file validation)
"""
