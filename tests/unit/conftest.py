"""Shared fixtures for unit tests."""

import pytest
from unittest.mock import Mock

from imdsnat.core.executor import CommandResult
from imdsnat.services.nftables import NftBackend


class FakeNft(NftBackend):
    """In-memory nftables: one table/chain namespace and an ordered rule list.

    Set ``failures[kind]`` ("table", "chain", "rule" or "list") to a
    CommandResult to make that operation fail with it.
    """

    def __init__(self) -> None:
        self.tool_present = True
        self.tables: set[str] = set()
        self.chains: set[str] = set()
        self.rules: list[str] = []
        self.failures: dict[str, CommandResult] = {}
        self.list_calls = 0
        self.mutations: list[list[str]] = []

    def available(self) -> bool:
        return self.tool_present

    def list_chain(self, family: str, table: str, chain: str) -> CommandResult:
        self.list_calls += 1
        command = ["nft", "list", "chain", family, table, chain]

        if "list" in self.failures:
            return self.failures["list"]

        if f"{family} {table} {chain}" not in self.chains:
            return CommandResult(
                command=command,
                return_code=1,
                output=(
                    "Error: No such file or directory\n"
                    f"list chain {family} {table} {chain}\n"
                ),
            )

        lines = [
            f"table {family} {table} {{",
            f"\tchain {chain} {{",
            "\t\ttype nat hook prerouting priority dstnat; policy accept;",
        ]
        lines.extend(f"\t\t{rule}" for rule in self.rules)
        lines.extend(["\t}", "}"])
        return CommandResult(command=command, return_code=0, output="\n".join(lines) + "\n")

    def mutate(self, args, *, description=None) -> CommandResult:
        self.mutations.append(list(args))
        command = ["nft"] + list(args)
        kind = args[1]

        if kind in self.failures:
            return self.failures[kind]

        if kind == "table":
            self.tables.add(f"{args[2]} {args[3]}")
        elif kind == "chain":
            self.chains.add(f"{args[2]} {args[3]} {args[4]}")
        elif kind == "rule":
            self.rules.append(args[-1])

        return CommandResult(command=command, return_code=0, output="")


@pytest.fixture
def fake_nft():
    """An empty in-memory nftables backend."""
    return FakeNft()


@pytest.fixture
def mock_ctx():
    """Create a mock execution context."""
    ctx = Mock()
    ctx.dry_run = False
    ctx.console = Mock()
    return ctx


@pytest.fixture
def mock_audit():
    """Create a mock audit logger."""
    return Mock()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep IMDSNAT_* variables from the developer's shell out of tests."""
    for name in (
        "IMDSNAT_APP_PORT",
        "IMDSNAT_METADATA_ADDRESS",
        "IMDSNAT_HOST_INTERFACE",
        "IMDSNAT_HOST_IP",
    ):
        monkeypatch.delenv(name, raising=False)
