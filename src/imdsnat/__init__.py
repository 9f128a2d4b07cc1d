"""
imdsnat - Metadata service NAT redirect for node-level proxies.

Installs and maintains a single idempotent nftables DNAT rule that sends
cloud metadata API traffic arriving on a host interface to a local proxy.
"""

__version__ = "1.0.0"
__author__ = "imdsnat maintainers"
