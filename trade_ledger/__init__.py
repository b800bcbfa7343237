"""On-chain trade ledger: classification, reconciliation and position reporting."""

__version__ = "0.1.0"
