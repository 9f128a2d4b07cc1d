"""Service abstractions for interacting with the host firewall."""

from imdsnat.services.nftables import (
    NftBackend,
    NftCli,
    ReconcileResult,
    ReconcileState,
    RedirectReconciler,
    RedirectSpec,
    add_redirect_rule,
    build_rule_expression,
)
from imdsnat.services.network import normalize_interface

__all__ = [
    "NftBackend",
    "NftCli",
    "ReconcileResult",
    "ReconcileState",
    "RedirectReconciler",
    "RedirectSpec",
    "add_redirect_rule",
    "build_rule_expression",
    "normalize_interface",
]
