"""Store provisioning: open the configured store and migrate its schema.

Provisioning is a blocking setup step with no timeout and no retry. Any
failure is fatal to the caller; the store is closed before the error
propagates.
"""

import importlib
import logging

from ledgermock.config import DataSourceConfig
from ledgermock.core.errors import ConfigurationError
from ledgermock.core.ports import PersistencePort

from .migrations import MigrationResult, SchemaMigrator

logger = logging.getLogger(__name__)


def load_persistence_class(class_name: str) -> type[PersistencePort]:
    """Import the persistence adapter named by a dotted path.

    Raises:
        ConfigurationError: If the class cannot be imported or is not a
            PersistencePort.
    """
    module_name, _, attr = class_name.rpartition(".")
    if not module_name:
        raise ConfigurationError(f"Data source class name must be a dotted path: {class_name!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import data source class {class_name}: {e}") from e
    cls = getattr(module, attr, None)
    if not isinstance(cls, type) or not issubclass(cls, PersistencePort):
        raise ConfigurationError(f"{class_name} is not a persistence adapter")
    return cls


async def provision_database(
    config: DataSourceConfig, run_migration: bool = True
) -> tuple[PersistencePort, MigrationResult | None]:
    """Open the store described by ``config`` and bring its schema up to date.

    Returns:
        The open persistence handle and the migration outcome (None when
        ``run_migration`` is False).

    Raises:
        ConfigurationError: If the data source class is unusable.
        ProvisioningError: If the store is unreachable or migration fails.
    """
    persistence_cls = load_persistence_class(config.class_name)
    persistence = persistence_cls(config)  # type: ignore[call-arg]
    logger.info(f"Provisioning store: {config.describe()}")
    await persistence.open()
    try:
        result = await SchemaMigrator(persistence).migrate() if run_migration else None
    except Exception:
        await persistence.close()
        raise
    return persistence, result
