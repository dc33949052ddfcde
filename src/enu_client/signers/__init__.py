"""
Transaction signing.
"""

from .signer import SignerError, TransactionSigner, sign_buffer

__all__ = ["SignerError", "TransactionSigner", "sign_buffer"]
