"""Host network interface utilities.

Provides:
- Interface lookup by name
- Wildcard interface handling
- Interface name translation to nftables match syntax
"""

import socket

from imdsnat.core.exceptions import InterfaceNotFoundError


# Conventional (iptables/kube) wildcard suffix, e.g. "cali+"
OS_WILDCARD = "+"

# nftables iifname wildcard, e.g. "cali*"
NFT_WILDCARD = "*"


def is_wildcard_interface(name: str) -> bool:
    """Check if an interface name is a wildcard pattern.

    Args:
        name: Interface name such as "eth0" or "cali+"

    Returns:
        True if the name contains the wildcard marker
    """
    return OS_WILDCARD in name


def normalize_interface(name: str) -> str:
    """Translate an interface name to nftables iifname syntax.

    Every '+' becomes '*'; nothing else changes. Never fails.

    Args:
        name: Raw interface name

    Returns:
        Name usable in an nft iifname match
    """
    return name.replace(OS_WILDCARD, NFT_WILDCARD)


def list_interfaces() -> list[str]:
    """List interface names known to the host.

    Returns:
        Sorted interface names, empty if the host does not expose them
    """
    try:
        return sorted(name for _, name in socket.if_nameindex())
    except OSError:
        return []


def interface_exists(name: str) -> bool:
    """Check if a network interface exists on this host.

    Args:
        name: Literal interface name

    Returns:
        True if the kernel knows the interface
    """
    try:
        socket.if_nametoindex(name)
        return True
    except (OSError, ValueError):
        return False


def check_interface_exists(name: str) -> None:
    """Confirm a host interface exists, ignoring wildcard names.

    Wildcards may name interfaces that do not exist yet (e.g. veth pairs
    created later for pods), so they are accepted unconditionally.

    Args:
        name: Interface name or wildcard pattern

    Raises:
        InterfaceNotFoundError: If a literal interface is absent
    """
    if is_wildcard_interface(name):
        return

    if not interface_exists(name):
        available = list_interfaces()
        hint = None
        if available:
            hint = f"Available interfaces: {', '.join(available)}"
        raise InterfaceNotFoundError(name, hint=hint)
