"""State resolution over the node's transaction, attachment and module context."""

from collections.abc import Iterable

from .errors import UnresolvedReference
from .identity import InMemoryIdentityService
from .models import NetworkParameters, StateAndRef, StateRef, TransactionState
from .ports import AttachmentStoragePort, ModuleProviderPort, TransactionStoragePort


class ServicesForResolution:
    """Resolves state references against recorded transactions.

    Identity, attachment and module context travel with the resolver so
    code that loads states can also map keys to parties and contracts to
    their attachments.
    """

    def __init__(
        self,
        identity_service: InMemoryIdentityService,
        attachments: AttachmentStoragePort,
        module_provider: ModuleProviderPort,
        network_parameters: NetworkParameters,
        validated_transactions: TransactionStoragePort,
    ):
        self.identity_service = identity_service
        self.attachments = attachments
        self.module_provider = module_provider
        self.network_parameters = network_parameters
        self.validated_transactions = validated_transactions

    def load_state(self, ref: StateRef) -> TransactionState:
        """Return the output ``ref`` points at.

        Raises:
            UnresolvedReference: If the producing transaction is unknown or
                has no output at ``ref.index``.
        """
        stx = self.validated_transactions.get_transaction(ref.txhash)
        if stx is None:
            raise UnresolvedReference(ref, "producing transaction not found")
        outputs = stx.tx.outputs
        if ref.index >= len(outputs):
            raise UnresolvedReference(
                ref, f"transaction has {len(outputs)} outputs"
            )
        return outputs[ref.index]

    def load_states(self, refs: Iterable[StateRef]) -> list[StateAndRef]:
        """Resolve every reference, dropping duplicates and keeping order."""
        seen: set[StateRef] = set()
        resolved: list[StateAndRef] = []
        for ref in refs:
            if ref in seen:
                continue
            seen.add(ref)
            resolved.append(StateAndRef(self.load_state(ref), ref))
        return resolved
