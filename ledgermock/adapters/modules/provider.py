"""Module provider with support for mock modules.

Every loaded module is given an attachment so contracts resolve to an
attachment id. Tests that only need contract resolution can add a mock
module for a contract name without scanning any package.
"""

import logging
from collections.abc import Mapping, Sequence

from ledgermock.core.crypto import SecureHash
from ledgermock.core.models import AppModule
from ledgermock.core.ports import AttachmentStoragePort, ModuleProviderPort

from .loader import ModuleLoader

logger = logging.getLogger(__name__)


def _module_archive(module: AppModule) -> bytes:
    lines = [f"module: {module.name}", *(f"contract: {name}" for name in module.contract_class_names)]
    return "\n".join(lines).encode()


class MockModuleProvider(ModuleProviderPort):
    """Application modules of a mock node and the attachments holding them."""

    def __init__(
        self,
        loader: ModuleLoader,
        attachments: AttachmentStoragePort,
        whitelisted_contract_implementations: Mapping[str, Sequence[SecureHash]] | None = None,
    ):
        self.loader = loader
        self.attachments = attachments
        self.whitelisted_contract_implementations = whitelisted_contract_implementations or {}
        self._modules: list[AppModule] = []
        self._contract_attachments: dict[str, SecureHash] = {}
        for module in loader.modules:
            self._install(module, _module_archive(module))

    def _install(self, module: AppModule, archive: bytes) -> SecureHash:
        attachment_id = self.attachments.import_attachment(
            archive, uploader="app", filename=f"{module.name}.jar"
        )
        self._modules.append(module)
        for contract in module.contract_class_names:
            self._contract_attachments.setdefault(contract, attachment_id)
        return attachment_id

    @property
    def modules(self) -> Sequence[AppModule]:
        return tuple(self._modules)

    def get_contract_attachment_id(self, contract_class_name: str) -> SecureHash | None:
        return self._contract_attachments.get(contract_class_name)

    def add_mock_module(self, contract_class_name: str) -> SecureHash:
        """Register a lightweight module holding just ``contract_class_name``.

        Returns the existing attachment id if the contract is already known.
        """
        existing = self._contract_attachments.get(contract_class_name)
        if existing is not None:
            return existing

        archive = f"mock module: {contract_class_name}".encode()
        module = AppModule(
            name=f"mock-{contract_class_name}",
            packages=(),
            contract_class_names=(contract_class_name,),
            service_classes=(),
            module_hash=SecureHash.sha256(archive),
        )
        attachment_id = self._install(module, archive)
        whitelisted = self.whitelisted_contract_implementations.get(contract_class_name)
        if whitelisted and attachment_id not in whitelisted:
            logger.warning(
                f"Mock module for {contract_class_name} is not in the contract whitelist",
                extra={"contract": contract_class_name},
            )
        logger.debug(f"Added mock module for {contract_class_name}")
        return attachment_id
