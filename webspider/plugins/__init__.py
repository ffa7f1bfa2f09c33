"""
Spider plugins.

Plugins consume the spider's output stream while the crawl runs. Bundled
plugins register themselves with `plugin_registry` when this package is
imported.
"""

from .base import Plugin, PluginOptions, PluginRegistry, load_plugins, plugin_registry

__all__ = ['Plugin', 'PluginOptions', 'PluginRegistry', 'load_plugins', 'plugin_registry']

# Imported last so the registry exists when they register
from .form_finder import FormFinder
from .mass_dumper import MassDumper
from .server_id import ServerID

__all__.extend(['FormFinder', 'MassDumper', 'ServerID'])
