"""Creator and stream registries."""

from streampay.registry.creators import CreatorRegistry
from streampay.registry.streams import StreamRegistry

__all__ = ["CreatorRegistry", "StreamRegistry"]
