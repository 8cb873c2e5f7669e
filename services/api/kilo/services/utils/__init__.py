"""Internal utilities: usage ledger, quota checks, rate limiting, file validation."""
