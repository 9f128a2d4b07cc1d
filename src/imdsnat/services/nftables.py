"""nftables metadata redirect service.

Keeps a single DNAT rule in a dedicated nftables chain so that traffic to
the metadata service on TCP port 80, arriving on the pod-facing interface,
is sent to the local metadata proxy:

    table ip imdsnat {
        chain prerouting {
            type nat hook prerouting priority -100;
            ip daddr 169.254.169.254 tcp dport 80 iifname "cali*" dnat to 10.0.0.5:8181
        }
    }

Reconciliation is idempotent across invocations. Existence of the rule is
decided by a literal substring match of the rendered rule expression
against the chain listing, so the expression rendering must stay stable.
No locking is taken: two concurrent runs may both install the rule.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

from imdsnat.core.audit import AuditEventType, AuditLogger, get_audit_logger
from imdsnat.core.context import ExecutionContext
from imdsnat.core.exceptions import (
    ImdsNatError,
    InstallError,
    MissingConfigurationError,
    ProvisioningError,
    QueryError,
    ToolUnavailableError,
)
from imdsnat.core.executor import CommandExecutor, CommandResult
from imdsnat.services.network import check_interface_exists, normalize_interface

if TYPE_CHECKING:
    from imdsnat.core.config import RedirectConfig


# Constants
NFT_BINARY = "nft"
FAMILY = "ip"
TABLE_NAME = "imdsnat"
CHAIN_NAME = "prerouting"
CHAIN_TYPE = "nat"
CHAIN_HOOK = "prerouting"
CHAIN_PRIORITY = -100
METADATA_PORT = 80

# Diagnostics meaning "the chain (or its table) is not there yet"
ABSENT_MARKERS = ("no such file or directory", "does not exist")

# Diagnostics meaning "the object is already there"
EXISTS_MARKERS = ("file exists",)


class ReconcileState(str, Enum):
    """Progress of a single reconciliation."""
    START = "start"
    VALIDATED = "validated"
    TABLE_ENSURED = "table_ensured"
    CHAIN_ENSURED = "chain_ensured"
    CHECKED = "checked"
    INSTALLED = "installed"
    ALREADY_PRESENT = "already_present"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RedirectSpec:
    """Desired redirect: metadata traffic on host_interface -> host_ip:app_port."""
    app_port: str
    metadata_address: str
    host_interface: str
    host_ip: str

    @classmethod
    def from_config(cls, config: "RedirectConfig") -> "RedirectSpec":
        """Build a spec from resolved configuration."""
        return cls(
            app_port=config.app_port,
            metadata_address=config.metadata_address,
            host_interface=config.host_interface,
            host_ip=config.host_ip,
        )

    def __str__(self) -> str:
        return (
            f"{self.metadata_address}:{METADATA_PORT} on {self.host_interface} "
            f"-> {self.host_ip}:{self.app_port}"
        )


@dataclass
class ReconcileResult:
    """Outcome of a successful reconciliation."""
    spec: RedirectSpec
    expression: str
    state: ReconcileState
    history: list[ReconcileState] = field(default_factory=list)

    @property
    def installed(self) -> bool:
        """Check if this run appended the rule."""
        return self.state == ReconcileState.INSTALLED


def build_rule_expression(spec: RedirectSpec) -> str:
    """Render the canonical nft rule expression for a redirect.

    Token order and single spacing are fixed; identical specs always
    render to identical text.

    Args:
        spec: Redirect to render

    Returns:
        Rule expression, e.g.
        "ip daddr 169.254.169.254 tcp dport 80 iifname eth0 dnat to 10.0.0.5:8080"
    """
    return (
        f"ip daddr {spec.metadata_address} "
        f"tcp dport {METADATA_PORT} "
        f"iifname {normalize_interface(spec.host_interface)} "
        f"dnat to {spec.host_ip}:{spec.app_port}"
    )


def table_args() -> list[str]:
    """nft arguments creating the redirect table."""
    return ["add", "table", FAMILY, TABLE_NAME]


def chain_args() -> list[str]:
    """nft arguments creating the NAT pre-routing chain."""
    return [
        "add", "chain", FAMILY, TABLE_NAME, CHAIN_NAME,
        "{", "type", CHAIN_TYPE, "hook", CHAIN_HOOK,
        "priority", str(CHAIN_PRIORITY), ";", "}",
    ]


def rule_args(expression: str) -> list[str]:
    """nft arguments appending a rule to the redirect chain."""
    return ["add", "rule", FAMILY, TABLE_NAME, CHAIN_NAME, expression]


def _contains_any(output: str, markers: tuple[str, ...]) -> bool:
    text = output.lower()
    return any(marker in text for marker in markers)


class NftBackend(ABC):
    """The two nftables operations reconciliation needs, plus tool lookup."""

    @abstractmethod
    def available(self) -> bool:
        """Check if the nft tool can be invoked."""

    @abstractmethod
    def list_chain(self, family: str, table: str, chain: str) -> CommandResult:
        """List a chain's contents. Never raises on non-zero exit."""

    @abstractmethod
    def mutate(self, args: list[str], *, description: Optional[str] = None) -> CommandResult:
        """Run an nft mutation. Never raises on non-zero exit."""


class NftCli(NftBackend):
    """NftBackend driving the nft command-line tool."""

    def __init__(self, executor: CommandExecutor, binary: str = NFT_BINARY) -> None:
        self.executor = executor
        self.binary = binary

    def available(self) -> bool:
        return self.executor.which(self.binary) is not None

    def list_chain(self, family: str, table: str, chain: str) -> CommandResult:
        return self.executor.run(
            [self.binary, "list", "chain", family, table, chain],
            check=False,
            mutating=False,
        )

    def mutate(self, args: list[str], *, description: Optional[str] = None) -> CommandResult:
        return self.executor.run(
            [self.binary] + args,
            description=description,
            check=False,
        )


class RedirectReconciler:
    """Ensures exactly one metadata redirect rule exists.

    Steps, in order, each aborting the run on failure:
    1. Preconditions (host IP set, interface present, nft available)
    2. Table ip imdsnat
    3. Chain prerouting, type nat hook prerouting priority -100
    4. Rule, appended only if its expression is not already listed

    Nothing is rolled back: a failed rule install leaves the table and
    chain in place.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        backend: NftBackend,
        *,
        audit: Optional[AuditLogger] = None,
    ) -> None:
        """Initialize reconciler.

        Args:
            ctx: Execution context
            backend: nftables access
            audit: Audit logger (global logger if None)
        """
        self.ctx = ctx
        self.backend = backend
        self.audit = audit or get_audit_logger()

    # =========================================================================
    # Preconditions
    # =========================================================================

    def check_preconditions(self, spec: RedirectSpec) -> None:
        """Confirm reconciliation can safely proceed.

        Args:
            spec: Desired redirect

        Raises:
            MissingConfigurationError: If host_ip is empty
            InterfaceNotFoundError: If a literal host interface is absent
            ToolUnavailableError: If nft is not on PATH
        """
        if not spec.host_ip:
            raise MissingConfigurationError(
                "--host-ip must be set",
                setting="host_ip",
                hint="Pass --host-ip or set IMDSNAT_HOST_IP; it is never auto-detected",
            )

        check_interface_exists(spec.host_interface)

        if not self.backend.available():
            raise ToolUnavailableError(NFT_BINARY)

    # =========================================================================
    # Containers
    # =========================================================================

    def ensure_table(self) -> None:
        """Create the redirect table if it does not exist.

        Raises:
            ProvisioningError: If nft fails for a reason other than already-exists
        """
        self._provision(table_args(), f"table {FAMILY} {TABLE_NAME}")
        self.audit.log_success(
            AuditEventType.TABLE_ENSURE, "table", f"{FAMILY} {TABLE_NAME}",
            dry_run=self.ctx.dry_run,
        )

    def ensure_chain(self) -> None:
        """Create the pre-routing NAT chain if it does not exist.

        Raises:
            ProvisioningError: If nft fails for a reason other than already-exists
        """
        self._provision(chain_args(), f"chain {FAMILY} {TABLE_NAME} {CHAIN_NAME}")
        self.audit.log_success(
            AuditEventType.CHAIN_ENSURE, "chain", f"{FAMILY} {TABLE_NAME} {CHAIN_NAME}",
            dry_run=self.ctx.dry_run,
        )

    def _provision(self, args: list[str], what: str) -> None:
        result = self.backend.mutate(args, description=f"Ensuring nftables {what}")
        if result.success:
            return

        if _contains_any(result.output, EXISTS_MARKERS):
            self.ctx.console.debug(f"nftables {what} already exists")
            return

        raise ProvisioningError(
            f"Failed to create nftables {what}",
            command=" ".join([NFT_BINARY] + args),
            return_code=result.return_code,
            output=result.output,
        )

    # =========================================================================
    # Rule
    # =========================================================================

    def rule_exists(self, expression: str) -> bool:
        """Check if the rule expression is already in the redirect chain.

        A missing chain or table counts as "rule absent".

        Args:
            expression: Rendered rule expression

        Returns:
            True if the chain listing contains the expression verbatim

        Raises:
            QueryError: If listing fails for any other reason
        """
        if self.ctx.dry_run:
            return False  # In dry-run, assume rule doesn't exist

        result = self.backend.list_chain(FAMILY, TABLE_NAME, CHAIN_NAME)
        if not result.success:
            if _contains_any(result.output, ABSENT_MARKERS):
                self.ctx.console.debug("Redirect chain not found, rule treated as absent")
                return False
            raise QueryError(
                "Failed to list nftables redirect chain",
                command=f"{NFT_BINARY} list chain {FAMILY} {TABLE_NAME} {CHAIN_NAME}",
                return_code=result.return_code,
                output=result.output,
            )

        return expression in result.output

    def install_rule(self, expression: str) -> None:
        """Append the rule expression to the redirect chain.

        Args:
            expression: Rendered rule expression

        Raises:
            InstallError: If nft rejects the rule
        """
        args = rule_args(expression)
        result = self.backend.mutate(args, description=f"Adding rule: {expression}")
        if not result.success:
            raise InstallError(
                "Failed to add nftables redirect rule",
                command=" ".join([NFT_BINARY] + args),
                return_code=result.return_code,
                output=result.output,
                hint="Check that the nat hook is supported by this kernel (nf_nat module)",
            )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def reconcile(self, spec: RedirectSpec) -> ReconcileResult:
        """Bring nftables to the desired redirect state.

        Args:
            spec: Desired redirect

        Returns:
            ReconcileResult with final state INSTALLED or ALREADY_PRESENT

        Raises:
            ImdsNatError: Any precondition or nftables failure, unchanged
        """
        history = [ReconcileState.START]
        expression = build_rule_expression(spec)

        try:
            self.check_preconditions(spec)
            history.append(ReconcileState.VALIDATED)

            self.ensure_table()
            history.append(ReconcileState.TABLE_ENSURED)

            self.ensure_chain()
            history.append(ReconcileState.CHAIN_ENSURED)

            exists = self.rule_exists(expression)
            history.append(ReconcileState.CHECKED)

            if exists:
                self.ctx.console.info(f"Rule already exists, skipping: {expression}")
                self.audit.log_success(
                    AuditEventType.RULE_PRESENT, "rule", expression,
                    dry_run=self.ctx.dry_run,
                )
                state = ReconcileState.ALREADY_PRESENT
            else:
                self.install_rule(expression)
                self.audit.log_success(
                    AuditEventType.RULE_INSTALL, "rule", expression,
                    dry_run=self.ctx.dry_run,
                )
                state = ReconcileState.INSTALLED
            history.append(state)

        except ImdsNatError as e:
            history.append(ReconcileState.FAILED)
            self.ctx.console.debug(
                f"Reconcile failed after {history[-2].value}: {e.message}"
            )
            self.audit.log_failure(
                AuditEventType.RECONCILE_FAILED, "rule", expression, error=e.message,
            )
            raise

        history.append(ReconcileState.DONE)
        return ReconcileResult(
            spec=spec,
            expression=expression,
            state=state,
            history=history,
        )

    def status(self, spec: RedirectSpec) -> bool:
        """Read-only check whether the redirect rule is installed.

        Args:
            spec: Redirect to look for

        Returns:
            True if the rule is present

        Raises:
            ToolUnavailableError: If nft is not on PATH
            QueryError: If listing fails for a reason other than absence
        """
        if not self.backend.available():
            raise ToolUnavailableError(NFT_BINARY)
        return self.rule_exists(build_rule_expression(spec))

    def planned_commands(self, spec: RedirectSpec) -> list[list[str]]:
        """The nft commands a full reconciliation may issue, in order."""
        return [
            [NFT_BINARY] + table_args(),
            [NFT_BINARY] + chain_args(),
            [NFT_BINARY, "list", "chain", FAMILY, TABLE_NAME, CHAIN_NAME],
            [NFT_BINARY] + rule_args(build_rule_expression(spec)),
        ]


def create_reconciler(
    ctx: ExecutionContext,
    *,
    timeout: Optional[int] = None,
    audit: Optional[AuditLogger] = None,
) -> RedirectReconciler:
    """Create a reconciler that drives the real nft tool."""
    executor = CommandExecutor(ctx, timeout=timeout)
    return RedirectReconciler(ctx, NftCli(executor), audit=audit)


def add_redirect_rule(
    app_port: str,
    metadata_address: str,
    host_interface: str,
    host_ip: str,
    *,
    ctx: Optional[ExecutionContext] = None,
) -> ReconcileResult:
    """Ensure the metadata redirect rule exists on this host.

    This is the entry point for callers such as a proxy's startup routine.

    Args:
        app_port: Port the local proxy listens on
        metadata_address: Metadata service IP or CIDR
        host_interface: Ingress interface, '+' suffix for a prefix match
        host_ip: Address the local proxy listens on

    Returns:
        ReconcileResult

    Raises:
        ImdsNatError: On any precondition or nftables failure
    """
    ctx = ctx or ExecutionContext()
    spec = RedirectSpec(
        app_port=str(app_port),
        metadata_address=metadata_address,
        host_interface=host_interface,
        host_ip=host_ip,
    )
    return create_reconciler(ctx).reconcile(spec)
