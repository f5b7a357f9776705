from selfsend.txn_factory.builder import (
    SignedTransfer,
    TransferSubmitter,
    encode_transfer_call,
    inflate_gas,
    native_transfer,
    sign_transfer,
    token_transfer,
    with_gas,
)

__all__ = [
    "SignedTransfer",
    "TransferSubmitter",
    "encode_transfer_call",
    "inflate_gas",
    "native_transfer",
    "sign_transfer",
    "token_transfer",
    "with_gas",
]
