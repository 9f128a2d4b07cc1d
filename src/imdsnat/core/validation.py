"""Input validation utilities.

Provides validation for:
- Port numbers (given as int or string)
- IP addresses and CIDR networks
- Host interface names

All validators return the validated value or raise ValidationError.
"""

import ipaddress
import re
from typing import Union

from imdsnat.core.exceptions import ValidationError


MIN_PORT = 1
MAX_PORT = 65535

# Linux IFNAMSIZ is 16 including the terminating NUL
MAX_INTERFACE_NAME_LENGTH = 15

INTERFACE_NAME_PATTERN = re.compile(r"^[^\s/:]+$")


def validate_port(value: Union[int, str]) -> str:
    """Validate a port number.

    Args:
        value: Port number, as int or decimal string

    Returns:
        The port as a canonical decimal string

    Raises:
        ValidationError: If port is not a number or out of range
    """
    text = str(value).strip()
    if not (text.isascii() and text.isdigit()):
        raise ValidationError(
            f"Invalid port number: {value!r}",
            hint=f"Port must be a number between {MIN_PORT} and {MAX_PORT}",
        )

    port = int(text)
    if not MIN_PORT <= port <= MAX_PORT:
        raise ValidationError(
            f"Invalid port number: {value}",
            hint=f"Port must be between {MIN_PORT} and {MAX_PORT}",
        )

    return str(port)


def validate_ip_address(value: str) -> str:
    """Validate a single IPv4 address.

    Args:
        value: Address string (e.g., "10.0.0.5")

    Returns:
        The stripped address string

    Raises:
        ValidationError: If the address is not valid IPv4
    """
    value = value.strip()

    try:
        address = ipaddress.ip_address(value)
    except ValueError as e:
        raise ValidationError(
            f"Invalid IP address: {value}",
            hint="Use a dotted-quad address like 10.0.0.5",
            details=[str(e)],
        ) from e

    if address.version != 4:
        raise ValidationError(
            f"IPv6 address not supported: {value}",
            hint="The redirect rule lives in an IPv4 (ip family) table",
        )

    return value


def validate_address_or_cidr(value: str) -> str:
    """Validate an IPv4 address or CIDR network.

    Args:
        value: Address or network (e.g., "169.254.169.254" or "169.254.0.0/16")

    Returns:
        The stripped value, unchanged otherwise

    Raises:
        ValidationError: If the value is neither
    """
    value = value.strip()

    try:
        network = ipaddress.ip_network(value, strict=False)
    except ValueError as e:
        raise ValidationError(
            f"Invalid IP address or CIDR: {value}",
            hint="Use format like '169.254.169.254' or '169.254.0.0/16'",
            details=[str(e)],
        ) from e

    if network.version != 4:
        raise ValidationError(
            f"IPv6 address not supported: {value}",
            hint="The redirect rule lives in an IPv4 (ip family) table",
        )

    return value


def validate_interface_name(value: str) -> str:
    """Validate the shape of a host interface name.

    Wildcard names (containing '+') are accepted; existence on the host is
    checked separately at reconcile time.

    Args:
        value: Interface name (e.g., "eth0", "cali+")

    Returns:
        The validated name

    Raises:
        ValidationError: If the name is empty, too long or malformed
    """
    if not value:
        raise ValidationError(
            "Interface name cannot be empty",
            hint="Pass the interface that carries pod traffic, e.g. docker0 or cali+",
        )

    if len(value) > MAX_INTERFACE_NAME_LENGTH:
        raise ValidationError(
            f"Interface name exceeds maximum length of {MAX_INTERFACE_NAME_LENGTH}: {value}",
        )

    if not INTERFACE_NAME_PATTERN.match(value):
        raise ValidationError(
            f"Invalid interface name: {value!r}",
            hint="Interface names cannot contain whitespace, '/' or ':'",
        )

    return value
