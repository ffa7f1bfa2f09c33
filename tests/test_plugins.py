import asyncio

import pytest

from webspider.crawler.parser import FormElement
from webspider.exceptions import PluginError
from webspider.plugins import (
    FormFinder, MassDumper, Plugin, PluginOptions, PluginRegistry, ServerID,
    load_plugins, plugin_registry
)


SEED = "http://example.com/"


async def crawl(spider):
    assert await spider.start()
    await asyncio.wait_for(spider.join(), 5)


class Collector(Plugin):
    name = "Collector"

    def __init__(self, spider):
        super().__init__(spider)
        self.seen = []

    async def run(self):
        while True:
            url = await self.get_url()
            if url is None:
                break
            self.seen.append(url)


def test_plugin_options_are_case_insensitive():
    options = PluginOptions({"OutFile": "report.txt"})
    options["Threads"] = 3

    assert options["outfile"] == "report.txt"
    assert "OUTFILE" in options
    assert options["threads"] == "3"
    assert sorted(options) == ["outfile", "threads"]

    del options["THREADS"]
    assert "threads" not in options
    assert 42 not in options


def test_frozen_plugin_options_reject_writes():
    options = PluginOptions({"a": "1"})
    options.freeze()

    with pytest.raises(PluginError):
        options["b"] = "2"
    with pytest.raises(PluginError):
        del options["a"]
    assert options["a"] == "1"

    options.unfreeze()
    options["b"] = "2"
    assert len(options) == 2


def test_registry_lookup_and_duplicates():
    registry = PluginRegistry()
    registry.register("Collector", Collector)

    assert registry.get("collector") is Collector
    assert "COLLECTOR" in registry
    assert registry.names() == ["Collector"]

    # Registering the same factory again is harmless
    registry.register("Collector", Collector)
    with pytest.raises(PluginError):
        registry.register("collector", FormFinder)
    with pytest.raises(PluginError, match="Invalid plugin: Nope"):
        registry.get("Nope")


def test_bundled_plugins_are_registered():
    assert plugin_registry.get("FormFinder") is FormFinder
    assert plugin_registry.get("massdumper") is MassDumper
    assert plugin_registry.get("ServerID") is ServerID


def test_load_plugins_skips_blank_and_base_names(spider_factory):
    registry = PluginRegistry()
    registry.register("Collector", Collector)
    spider = spider_factory({SEED: []}, registry=registry)

    plugins = load_plugins(["", " Collector ", "Plugin"], spider, registry)

    assert [type(plugin) for plugin in plugins] == [Collector]
    assert plugins[0].options is spider.plugin_options


def test_load_plugins_requires_options(spider_factory):
    spider = spider_factory({SEED: []})
    spider.set_plugin_option("EXTS", ".pdf")

    with pytest.raises(PluginError, match="Plugin option 'outdir' not defined and is required by MassDumper"):
        spider.load_plugins(["MassDumper"])
    assert spider.plugins == []


def test_load_plugins_wraps_constructor_failures(spider_factory):
    registry = PluginRegistry()

    def broken(spider):
        raise ValueError("no luck")

    registry.register("Broken", broken)
    spider = spider_factory({SEED: []}, registry=registry)

    with pytest.raises(PluginError, match="no luck"):
        spider.load_plugins(["Broken"])
    with pytest.raises(PluginError, match="Invalid plugin"):
        spider.load_plugins(["Missing"])


@pytest.mark.asyncio
async def test_plugin_follows_the_stream_of_a_restarted_crawl(spider_factory):
    registry = PluginRegistry()
    registry.register("Collector", Collector)
    graph = {SEED: ["http://example.com/a.html"], "http://example.com/a.html": []}
    spider = spider_factory(graph, registry=registry)
    plugin = spider.load_plugins(["Collector"])[0]

    await crawl(spider)
    assert plugin.seen == [SEED, "http://example.com/a.html"]

    await crawl(spider)
    assert plugin.seen == [SEED, "http://example.com/a.html"] * 2


@pytest.mark.asyncio
async def test_form_finder_reports_pages_with_matching_forms(spider_factory, fake_browser_factory, tmp_path):
    graph = {
        SEED: ["http://example.com/login.php", "http://example.com/search.html",
               "http://example.com/logo.png", "http://example.com/about.html"],
        "http://example.com/login.php": [],
        "http://example.com/search.html": [],
        "http://example.com/about.html": [],
    }
    forms = {
        "http://example.com/login.php": [FormElement(action="http://example.com/auth", method="post")],
        "http://example.com/search.html": [FormElement(action="http://example.com/search.html")],
    }
    browser = fake_browser_factory(graph, forms=forms)
    spider = spider_factory(graph, browser=browser)
    outfile = tmp_path / "forms.txt"
    spider.set_plugin_option("method", "POST")
    spider.set_plugin_option("outfile", str(outfile))
    finder = spider.load_plugins(["FormFinder"])[0]

    await crawl(spider)

    assert finder.found == ["http://example.com/login.php"]
    assert outfile.read_text() == "http://example.com/login.php\n"
    # Not a page, so never opened by the plugin either
    assert "http://example.com/logo.png" not in browser.opened


@pytest.mark.asyncio
async def test_form_finder_without_method_reports_any_form(spider_factory, fake_browser_factory):
    graph = {SEED: ["http://example.com/search.html"], "http://example.com/search.html": []}
    forms = {"http://example.com/search.html": [FormElement(action="http://example.com/q")]}
    spider = spider_factory(graph, browser=fake_browser_factory(graph, forms=forms))
    finder = spider.load_plugins(["FormFinder"])[0]

    await crawl(spider)

    assert finder.found == ["http://example.com/search.html"]


def test_form_finder_treats_bare_host_as_index_page(spider_factory):
    spider = spider_factory({SEED: []})
    finder = FormFinder(spider)

    assert finder.is_page("http://example.com")
    assert finder.is_page("http://example.com/dir/")
    assert not finder.is_page("http://example.com/image.gif")
    assert not finder.is_page("mailto:someone@example.com")


@pytest.mark.asyncio
async def test_form_finder_rejects_unknown_method(spider_factory, tmp_path):
    graph = {SEED: ["http://example.com/a.html"], "http://example.com/a.html": []}
    spider = spider_factory(graph)
    spider.set_plugin_option("method", "put")
    spider.set_plugin_option("outfile", str(tmp_path / "forms.txt"))
    finder = spider.load_plugins(["FormFinder"])[0]

    await crawl(spider)

    assert finder.found == []
    assert not (tmp_path / "forms.txt").exists()


@pytest.mark.asyncio
async def test_server_id_identifies_each_host_once(spider_factory, fake_browser_factory, tmp_path):
    graph = {
        SEED: ["http://other.com/x.html", "http://dead.org/z.html", "http://example.com/a.html"],
        "http://example.com/a.html": ["http://other.com/y.html", "http://quiet.net/"],
        "http://other.com/": [],
        "http://quiet.net/": [],
    }
    headers = {
        "example.com": {"Server": "nginx/1.2 "},
        "other.com": {"server": "Apache"},
    }
    browser = fake_browser_factory(graph, headers=headers)
    spider = spider_factory(graph, browser=browser)
    outfile = tmp_path / "servers.tsv"
    spider.set_plugin_option("OutFile", str(outfile))
    server_id = spider.load_plugins(["ServerID"])[0]

    await crawl(spider)

    assert server_id.servers == {"example.com": "nginx/1.2", "other.com": "Apache", "quiet.net": None}
    assert browser.head_requests.count("http://other.com/") == 1
    # A failed HEAD is not recorded, so the host is tried again on its next URL
    assert "dead.org" not in server_id.servers
    assert outfile.read_text().splitlines() == [
        "HOST\tSERVER",
        "example.com\tnginx/1.2",
        "other.com\tApache",
    ]


def test_mass_dumper_maps_urls_below_outdir(spider_factory, tmp_path):
    outdir = tmp_path.resolve()

    assert MassDumper.local_path("http://example.com/", outdir) == outdir / "index.html"
    assert MassDumper.local_path("http://example.com", outdir) == outdir / "index.html"
    assert MassDumper.local_path("http://example.com/docs", outdir) == outdir / "docs" / "index.html"
    assert MassDumper.local_path("http://example.com/docs/", outdir) == outdir / "docs" / "index.html"
    assert MassDumper.local_path("http://example.com/f/a.pdf?x=1", outdir) == outdir / "f" / "a.pdf"
    assert outdir in MassDumper.local_path("http://example.com/../../etc/passwd", outdir).parents
    assert MassDumper.local_path("not a url", outdir) is None


def test_mass_dumper_extension_filter():
    assert MassDumper.wanted("files/a.pdf", [".pdf", ".zip"])
    assert not MassDumper.wanted("files/a.pdf", [".zip"])
    assert MassDumper.wanted("files/anything", ["*"])


@pytest.mark.asyncio
async def test_mass_dumper_downloads_matching_files(spider_factory, fake_browser_factory, tmp_path):
    graph = {
        SEED: ["http://example.com/a.pdf", "http://example.com/docs/b.pdf",
               "http://example.com/c.html", "http://example.com/d.zip", "http://example.com/old.pdf"],
        "http://example.com/c.html": ["http://example.com/a.pdf", "http://example.com/e.pdf"],
    }
    browser = fake_browser_factory(graph, failures=["http://example.com/e.pdf"])
    spider = spider_factory(graph, browser=browser)
    outdir = tmp_path / "dump"
    outdir.mkdir()
    (outdir / "old.pdf").write_text("kept")
    spider.set_plugin_option("exts", ".pdf")
    spider.set_plugin_option("outdir", str(outdir))
    spider.set_plugin_option("threads", "2")
    dumper = spider.load_plugins(["MassDumper"])[0]

    await crawl(spider)

    assert dumper.downloaded == 2
    assert (outdir / "a.pdf").read_text() == "http://example.com/a.pdf"
    assert (outdir / "docs" / "b.pdf").read_text() == "http://example.com/docs/b.pdf"
    assert (outdir / "old.pdf").read_text() == "kept"
    assert not (outdir / "d.zip").exists()
    assert sorted(browser.downloads) == [
        "http://example.com/a.pdf", "http://example.com/docs/b.pdf", "http://example.com/e.pdf"
    ]


@pytest.mark.asyncio
async def test_mass_dumper_rejects_non_numeric_options(spider_factory, fake_browser_factory, tmp_path):
    graph = {SEED: ["http://example.com/a.pdf"]}
    browser = fake_browser_factory(graph)
    spider = spider_factory(graph, browser=browser)
    spider.set_plugin_option("exts", "*")
    spider.set_plugin_option("outdir", str(tmp_path))
    spider.set_plugin_option("max", "lots")
    dumper = spider.load_plugins(["MassDumper"])[0]

    # a.pdf is not a page, so the seed has nothing to crawl
    assert not await spider.start()
    await dumper.run()

    assert browser.downloads == []


@pytest.mark.asyncio
async def test_mass_dumper_budget_restarts_with_each_crawl(spider_factory, fake_browser_factory, tmp_path):
    graph = {SEED: ["http://example.com/a.pdf", "http://example.com/b.pdf", "http://example.com/c.html"],
             "http://example.com/c.html": []}
    browser = fake_browser_factory(graph)
    spider = spider_factory(graph, browser=browser)
    spider.set_plugin_option("exts", ".pdf")
    spider.set_plugin_option("outdir", str(tmp_path / "first"))
    spider.set_plugin_option("max", "2")
    dumper = spider.load_plugins(["MassDumper"])[0]

    await crawl(spider)
    assert dumper.downloaded == 2

    spider.set_plugin_option("outdir", str(tmp_path / "second"))
    await crawl(spider)

    assert dumper.downloaded == 2
    assert (tmp_path / "second" / "a.pdf").exists()
    assert (tmp_path / "second" / "b.pdf").exists()


@pytest.mark.asyncio
async def test_form_finder_reports_each_crawl_separately(spider_factory, fake_browser_factory):
    graph = {SEED: ["http://example.com/search.html"], "http://example.com/search.html": []}
    forms = {"http://example.com/search.html": [FormElement(action="http://example.com/q")]}
    spider = spider_factory(graph, browser=fake_browser_factory(graph, forms=forms))
    finder = spider.load_plugins(["FormFinder"])[0]

    await crawl(spider)
    await crawl(spider)

    assert finder.found == ["http://example.com/search.html"]
