from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from tre.config import CatalogConfig

if TYPE_CHECKING:
    from tre.catalog.app.manager import CatalogManager


class CmdBase(ABC):
    """Base class for ``tre`` commands.

    ``do_run`` opens the catalog for the duration of ``run`` and
    releases the store and the lake afterwards.
    """

    def __init__(self, args, config: Optional[CatalogConfig] = None):
        self.args = args
        self.config = config or CatalogConfig.from_env()
        self.catalog: Optional["CatalogManager"] = None

    def do_run(self) -> int:
        from tre.catalog.app.context import open_catalog

        with open_catalog(self.config) as catalog:
            self.catalog = catalog
            try:
                return self.run()
            finally:
                self.catalog = None

    @abstractmethod
    def run(self) -> int:
        pass
