from __future__ import annotations

from importlib import import_module
from importlib.metadata import PackageNotFoundError, version
from types import ModuleType
from typing import TYPE_CHECKING, Any

__all__ = [
    "__version__",
    "io_xlsx",
    "db",
    "cli",
]

try:
    __version__ = version("querybook")
except PackageNotFoundError:
    __version__ = "0.0.0"

if TYPE_CHECKING:
    import querybook.cli as cli
    import querybook.db as db
    import querybook.io.xlsx as io_xlsx

_ALIAS_MODULES: dict[str, str] = {
    "io_xlsx": "querybook.io.xlsx",
    "db": "querybook.db",
    "cli": "querybook.cli",
}


def __getattr__(name: str) -> Any:
    module_name = _ALIAS_MODULES.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module_loaded: ModuleType = import_module(module_name)
    globals()[name] = module_loaded
    return module_loaded


def __dir__() -> list[str]:
    return sorted(set(globals()) | set(__all__))
