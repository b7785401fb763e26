"""In-memory services for the Astor digital currency: ledger, conversion, feature flags, secrets, compliance, health, metrics, monitoring and cross-chain bridges."""

__version__ = "0.1.0"