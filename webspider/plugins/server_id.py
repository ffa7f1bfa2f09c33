"""
ServerID: identifies web servers from the Server response header.

Each host seen in the output stream gets one HEAD request to its root.

Options:
    outfile  tab-separated report file (HOST, SERVER)
"""

from typing import Dict, Optional

from .base import Plugin, plugin_registry
from ..crawler.policy import parse_url
from ..exceptions import FetchError, MalformedURLError
from ..storage.output import LineWriter


@plugin_registry.register("ServerID")
class ServerID(Plugin):
    name = "ServerID"
    required_options = ()

    def __init__(self, spider):
        super().__init__(spider)
        self.servers: Dict[str, Optional[str]] = {}

    async def run(self):
        self.servers = {}
        writer: Optional[LineWriter] = None
        outfile = self.get_option("outfile")
        if outfile:
            try:
                writer = LineWriter(outfile, header="HOST\tSERVER")
            except OSError as e:
                self.error(f"Error creating output file: {e}")
                return

        try:
            while True:
                url = await self.get_url()
                if url is None:
                    break
                try:
                    parts = parse_url(url)
                except MalformedURLError:
                    continue

                host = parts.netloc
                if host in self.servers:
                    continue

                try:
                    page = await self.browser.open(f"{parts.scheme}://{host}/", method="HEAD")
                except FetchError:
                    # Not recorded, so a later URL on this host retries
                    continue

                banner = page.get_response_header("Server")
                self.servers[host] = banner.strip() if banner else None
                if banner is None:
                    self.error(f"Error identifying host: {host}")
                    continue

                self.success(f"Host: {host}  Server: {banner.strip()}")
                if writer:
                    writer.write_line(f"{host}\t{banner.strip()}")
        finally:
            if writer:
                writer.close()
