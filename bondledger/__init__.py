# Bond Ledger - compliance-gated debt token ledger

__version__ = "0.1.0"
