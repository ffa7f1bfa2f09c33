"""
Base class, shared options and registry for spider plugins.

A plugin is an independent task that consumes the spider's output stream
through its own cursor. Plugins never touch the frontier; they may open
pages of their own through the spider's browser.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, Iterator, List, MutableMapping, Optional, Sequence

from ..exceptions import PluginError
from ..utils.logger import get_crawler_logger


class PluginOptions(MutableMapping):
    """
    Case-insensitive option map shared by every loaded plugin.

    Two plugins using the same option name see the same value. The map is
    frozen while plugins run.
    """

    def __init__(self, options: Optional[Dict[str, str]] = None):
        self._options: Dict[str, str] = {}
        self._frozen = False
        for name, value in (options or {}).items():
            self[name] = value

    def __getitem__(self, name: str) -> str:
        return self._options[name.lower()]

    def __setitem__(self, name: str, value: str):
        if self._frozen:
            raise PluginError(f"Plugin options are read-only while plugins run (setting '{name}')")
        self._options[name.lower()] = str(value)

    def __delitem__(self, name: str):
        if self._frozen:
            raise PluginError(f"Plugin options are read-only while plugins run (deleting '{name}')")
        del self._options[name.lower()]

    def __contains__(self, name) -> bool:
        return isinstance(name, str) and name.lower() in self._options

    def __iter__(self) -> Iterator[str]:
        return iter(self._options)

    def __len__(self) -> int:
        return len(self._options)

    def freeze(self):
        self._frozen = True

    def unfreeze(self):
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen


class Plugin(ABC):
    """
    Base class for spider plugins.

    Subclasses set `name` and `required_options` and implement run().
    """

    name = "plugin"
    required_options: Sequence[str] = ()

    def __init__(self, spider):
        self.spider = spider
        self.options: PluginOptions = spider.plugin_options
        self._cursor = None
        self.logger = get_crawler_logger(f"{__name__}.{self.name.lower()}", plugin=self.name)

    def get_required_options(self) -> List[str]:
        return [option.lower() for option in self.required_options]

    def get_option(self, name: str) -> Optional[str]:
        return self.options.get(name)

    @property
    def browser(self):
        return self.spider.get_browser()

    async def get_url(self) -> Optional[str]:
        """
        Next URL from the spider's output stream.

        Waits for new URLs while the spider is active; returns None once the
        crawl has finished and every URL has been read.
        """
        # A restarted spider has a new stream; follow it from its beginning
        if self._cursor is None or self._cursor.stream is not self.spider.output:
            self._cursor = self.spider.open_cursor()
        return await self._cursor.read_next()

    @abstractmethod
    async def run(self):
        """Consume the output stream until get_url() returns None."""

    def success(self, message: str):
        self.logger.info(f"[+] {message}")

    def status(self, message: str):
        self.logger.info(f"[*] {message}")

    def warning(self, message: str):
        self.logger.warning(f"[!] {message}")

    def error(self, message: str):
        self.logger.error(f"[-] {message}")


PluginFactory = Callable[..., Plugin]


class PluginRegistry:
    """Maps plugin names (case-insensitive) to plugin factories."""

    def __init__(self):
        self._factories: Dict[str, PluginFactory] = {}
        self._names: Dict[str, str] = {}

    def register(self, name: str, factory: Optional[PluginFactory] = None):
        """
        Register a factory under a name. Usable as a class decorator:

            @plugin_registry.register("FormFinder")
            class FormFinder(Plugin):
                ...
        """
        def decorator(factory: PluginFactory) -> PluginFactory:
            key = name.lower()
            if key in self._factories and self._factories[key] is not factory:
                raise PluginError(f"Plugin already registered: {name}")
            self._factories[key] = factory
            self._names[key] = name
            return factory

        if factory is not None:
            return decorator(factory)
        return decorator

    def get(self, name: str) -> PluginFactory:
        try:
            return self._factories[name.lower()]
        except KeyError:
            raise PluginError(f"Invalid plugin: {name}")

    def __contains__(self, name: str) -> bool:
        return name.lower() in self._factories

    def names(self) -> List[str]:
        return sorted(self._names.values())


def load_plugins(names: Iterable[str], spider, registry: PluginRegistry) -> List[Plugin]:
    """
    Resolve, instantiate and validate plugins, all or nothing.

    Raises:
        PluginError: on an unknown name, a failing constructor or a
            required option missing from the spider's plugin options
    """
    logger = logging.getLogger(__name__)
    plugins = []

    for name in names:
        name = name.strip()
        if not name or name == "Plugin":
            continue

        factory = registry.get(name)
        try:
            plugin = factory(spider)
        except PluginError:
            raise
        except Exception as e:
            logger.error(f"Error loading plugin {name}: {e}", exc_info=True)
            raise PluginError(f"Error loading plugin {name}: {e}") from e

        for option in plugin.get_required_options():
            if option not in spider.plugin_options:
                raise PluginError(f"Plugin option '{option}' not defined and is required by {name}")

        plugins.append(plugin)
        logger.debug(f"Loaded plugin {name}")

    return plugins


# Default registry; the bundled plugins register themselves on import.
plugin_registry = PluginRegistry()
