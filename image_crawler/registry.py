import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from image_crawler.adapters import (
    adobestock,
    artstation,
    bing,
    duckduckgo,
    flickr,
    freeimages,
    google,
    instagram,
    littlevisuals,
    pexels,
    pinterest,
    shutterstock,
    unsplash,
    wikimedia,
)
from image_crawler.descriptors import ProviderDescriptor, descriptor_key, parse_descriptor
from image_crawler.errors import ConfigError

logger = logging.getLogger("image_crawler.registry")

# Built-in descriptors, in the order `providers` lists them
BUILTIN: List[Mapping[str, Any]] = [
    google.DESCRIPTOR,
    bing.DESCRIPTOR,
    duckduckgo.DESCRIPTOR,
    unsplash.DESCRIPTOR,
    pinterest.DESCRIPTOR,
    instagram.DESCRIPTOR,
    artstation.DESCRIPTOR,
    adobestock.DESCRIPTOR,
    freeimages.DESCRIPTOR,
    shutterstock.DESCRIPTOR,
    littlevisuals.DESCRIPTOR,
    flickr.DESCRIPTOR,
    pexels.DESCRIPTOR,
    wikimedia.DESCRIPTOR,
]


class DescriptorRegistry:
    """Validated provider descriptors, looked up by normalized key.

    Everything registered here has already passed ``parse_descriptor``, so a
    lookup never hands the engine a descriptor it would have to second-guess.
    """

    def __init__(self, descriptors: Iterable[Union[ProviderDescriptor, Mapping[str, Any]]] = ()):
        self._by_key: Dict[str, ProviderDescriptor] = {}
        for d in descriptors:
            self.register(d)

    def register(self, descriptor: Union[ProviderDescriptor, Mapping[str, Any]],
                 key: Optional[str] = None, replace: bool = False) -> ProviderDescriptor:
        if not isinstance(descriptor, ProviderDescriptor):
            descriptor = parse_descriptor(descriptor, key)
        if descriptor.key in self._by_key and not replace:
            raise ConfigError(f"Provider {descriptor.key!r} is already registered", provider=descriptor.name)
        self._by_key[descriptor.key] = descriptor
        logger.debug("registered provider %s (%s)", descriptor.key, descriptor.name)
        return descriptor

    def get(self, name: str) -> ProviderDescriptor:
        key = descriptor_key(name)
        try:
            return self._by_key[key]
        except KeyError:
            raise ConfigError(
                f"Unknown provider {name!r}; known providers: {', '.join(self.names())}"
            ) from None

    def names(self) -> List[str]:
        return list(self._by_key)

    def descriptors(self) -> List[ProviderDescriptor]:
        return list(self._by_key.values())

    def __contains__(self, name: str) -> bool:
        return descriptor_key(name) in self._by_key

    def __len__(self) -> int:
        return len(self._by_key)

    def load_dir(self, directory: Union[str, Path], replace: bool = True) -> List[ProviderDescriptor]:
        """Register every ``*.json`` descriptor in ``directory``.

        All files are checked before any is registered; the ConfigError lists
        the problems of every invalid file.
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise ConfigError(f"Descriptor directory {directory} does not exist")

        parsed: List[ProviderDescriptor] = []
        problems: List[str] = []
        for path in sorted(directory.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                parsed.append(parse_descriptor(data))
            except ValueError as exc:
                problems.append(f"{path.name}: not valid JSON ({exc})")
            except ConfigError as exc:
                problems.append(f"{path.name}: {exc.message}")
        if problems:
            raise ConfigError(f"Invalid descriptors in {directory}", problems=problems)

        for descriptor in parsed:
            self.register(descriptor, replace=replace)
        logger.info("loaded %d descriptors from %s", len(parsed), directory)
        return parsed


def default_registry() -> DescriptorRegistry:
    return DescriptorRegistry(BUILTIN)


def pick_adapter(name: str, registry: Optional[DescriptorRegistry] = None) -> ProviderDescriptor:
    """Descriptor for a provider name, e.g. "duckduckgo" or "Shutterstock (Preview)"."""
    return (registry or default_registry()).get(name)
