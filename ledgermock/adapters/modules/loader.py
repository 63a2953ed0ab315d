"""Application module loader.

Scans packages for contract classes and classes marked as ledger services.
Packages are always named explicitly; ``caller_package`` turns a caller's
``__name__`` into the package to scan.
"""

import importlib
import inspect
import logging
import pkgutil
import sys
from collections.abc import Iterator, Sequence
from types import ModuleType

from ledgermock.core.crypto import SecureHash
from ledgermock.core.errors import ConfigurationError
from ledgermock.core.models import AppModule, Contract
from ledgermock.core.service_registry import is_ledger_service, type_id

logger = logging.getLogger(__name__)


def caller_package(module_name: str) -> str:
    """Package containing the module named ``module_name``.

    A package's own ``__init__`` maps to the package itself.

    Raises:
        ConfigurationError: If the module is top level and has no package.
    """
    module = sys.modules.get(module_name)
    package = getattr(module, "__package__", None) if module is not None else None
    if not package:
        package = module_name.rpartition(".")[0]
    if not package:
        raise ConfigurationError(
            f"Cannot infer an application package from top-level module {module_name!r}"
        )
    return package


def _import_package(name: str) -> ModuleType:
    try:
        return importlib.import_module(name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import application package {name!r}: {e}") from e


def _walk_modules(package: ModuleType) -> Iterator[ModuleType]:
    yield package
    if not hasattr(package, "__path__"):
        return
    prefix = package.__name__ + "."
    for info in pkgutil.walk_packages(package.__path__, prefix=prefix):
        yield _import_package(info.name)


def scan_package(name: str) -> AppModule:
    """Import ``name`` and its submodules and collect what they declare."""
    package = _import_package(name)
    contracts: list[str] = []
    services: list[type] = []
    for module in _walk_modules(package):
        for _, cls in inspect.getmembers(module, inspect.isclass):
            if cls.__module__ != module.__name__:
                continue
            if issubclass(cls, Contract) and not inspect.isabstract(cls):
                contracts.append(type_id(cls))
            if is_ledger_service(cls):
                services.append(cls)

    contracts.sort()
    services.sort(key=type_id)
    digest_input = "|".join([name, *contracts, *(type_id(s) for s in services)])
    module = AppModule(
        name=name,
        packages=(name,),
        contract_class_names=tuple(contracts),
        service_classes=tuple(services),
        module_hash=SecureHash.sha256(digest_input.encode()),
    )
    logger.debug(
        f"Scanned package {name}: {len(contracts)} contracts, {len(services)} services",
        extra={"package": name},
    )
    return module


class ModuleLoader:
    """Holds the application modules found in a set of packages."""

    def __init__(self, modules: Sequence[AppModule] = ()):
        self._modules = tuple(modules)

    @classmethod
    def create_with_packages(cls, packages: Sequence[str]) -> "ModuleLoader":
        """Scan each package once, in the order given.

        Raises:
            ConfigurationError: If a package cannot be imported.
        """
        seen: set[str] = set()
        modules = []
        for name in packages:
            if name in seen:
                continue
            seen.add(name)
            modules.append(scan_package(name))
        return cls(modules)

    @property
    def modules(self) -> tuple[AppModule, ...]:
        return self._modules

    @property
    def contract_class_names(self) -> tuple[str, ...]:
        return tuple(name for module in self._modules for name in module.contract_class_names)

    @property
    def service_classes(self) -> tuple[type, ...]:
        return tuple(cls for module in self._modules for cls in module.service_classes)
