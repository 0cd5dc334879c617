"""Statistical aggregation of listing sets."""

import importlib
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from property_search.aggregation.aggregator import calculate_stats  # noqa: F401
    from property_search.aggregation.stats import Stats  # noqa: F401

__all__ = ["Stats", "calculate_stats"]

# Lazy so that property_search.models can import .stats without pulling in
# the aggregator (which itself depends on the models).
_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "Stats": (".stats", "Stats"),
    "calculate_stats": (".aggregator", "calculate_stats"),
}


def __getattr__(name: str) -> Any:
    if name in _LAZY_IMPORTS:
        module_path, attr = _LAZY_IMPORTS[name]
        mod = importlib.import_module(module_path, __name__)
        val = getattr(mod, attr)
        globals()[name] = val
        return val
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return __all__
