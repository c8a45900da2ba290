"""Signal type registry.

SignalTypeRegistry is the runtime's catalog of signal types. It tracks which
types are registered and provides lookup by signal type. DetectionRuntime evaluates one unit per registered type per team.

The registry enforces two invariants: signal types are unique, and every
registered type has an entry in the polarity table that agrees with its
catalog polarity. A disagreement would make the emitter and the Outcome
Tracker judge the same metric in opposite directions.
"""

import json
import pathlib

from core.errors import UnknownSignalType
from schemas.catalog import SignalTypeDefinition
from signals.polarity import polarity_of

CATALOG_PATH = pathlib.Path(__file__).parents[1] / "signals" / "signal_types.json"


class SignalTypeRegistry:
    """Tracks registered signal types and provides lookup.

    Internally backed by a dict keyed on signal type, which preserves
    registration order for get_all().
    """

    def __init__(self) -> None:
        self._types: dict[str, SignalTypeDefinition] = {}

    def register(self, definition: SignalTypeDefinition) -> None:
        """Register a signal type.

        Raises:
            ValueError: If the type is already registered, or its catalog
                polarity disagrees with the polarity table.
            UnknownSignalType: If the type has no polarity table entry.
        """
        if definition.signal_type in self._types:
            raise ValueError(
                f"Signal type '{definition.signal_type}' is already registered. "
                "Each signal type must be unique."
            )
        if polarity_of(definition.signal_type).value != definition.polarity:
            raise ValueError(
                f"Signal type '{definition.signal_type}' declares polarity "
                f"'{definition.polarity}' but the polarity table says "
                f"'{polarity_of(definition.signal_type).value}'."
            )
        self._types[definition.signal_type] = definition

    def get_all(self) -> list[SignalTypeDefinition]:
        """Return all registered definitions as a new list."""
        return list(self._types.values())

    def get(self, signal_type: str) -> SignalTypeDefinition | None:
        return self._types.get(signal_type)

    def require(self, signal_type: str) -> SignalTypeDefinition:
        """Look up a signal type that must exist.

        Raises:
            UnknownSignalType: If the type is not registered.
        """
        definition = self._types.get(signal_type)
        if definition is None:
            raise UnknownSignalType(f"Signal type '{signal_type}' is not registered.")
        return definition

    def __len__(self) -> int:
        return len(self._types)


def load_default_registry(path: pathlib.Path = CATALOG_PATH) -> SignalTypeRegistry:
    """Load the bundled signal type catalog into a new registry."""
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    registry = SignalTypeRegistry()
    for entry in raw["signal_types"]:
        registry.register(SignalTypeDefinition.model_validate(entry))
    return registry
