import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from webspider.crawler.browser import Browser
from webspider.crawler.fetcher import WebFetcher
from webspider.exceptions import FetchError


INDEX = """
<html><body>
  <a href="/a.html">A</a>
  <img src="/logo.png">
  <form action="/search.php"><input name="q"></form>
</body></html>
"""


async def index(request):
    return web.Response(text=INDEX, content_type='text/html', headers={'Server': 'TestServer/1.0'})


async def echo_headers(request):
    ua = request.headers.get("User-Agent")
    token = request.headers.get("X-Token")
    body = f"<html><body><a href=\"/ua/{ua}?token={token}\">me</a></body></html>"
    return web.Response(text=body, content_type='text/html')


async def missing(request):
    raise web.HTTPNotFound()


async def logo(request):
    return web.Response(body=b"\x89PNG fake image", content_type='image/png')


@pytest_asyncio.fixture
async def server():
    app = web.Application()
    app.router.add_get('/', index)
    app.router.add_get('/echo', echo_headers)
    app.router.add_get('/missing.html', missing)
    app.router.add_get('/logo.png', logo)
    test_server = TestServer(app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest_asyncio.fixture
async def browser():
    fetcher = WebFetcher(user_agent="webspider-test", request_timeout=5.0,
                         headers={"X-Token": "abc123"})
    browser = Browser(fetcher)
    yield browser
    await browser.close()


@pytest.mark.asyncio
async def test_open_parses_links_and_forms(server, browser):
    url = str(server.make_url('/'))
    page = await browser.open(url)

    assert page.status_code == 200
    links = page.get_links()
    assert links['href'] == [str(server.make_url('/a.html'))]
    assert links['src'] == [str(server.make_url('/logo.png'))]
    assert links['action'] == [str(server.make_url('/search.php'))]
    assert [form.inputs for form in page.get_forms()] == [['q']]


@pytest.mark.asyncio
async def test_head_request_exposes_headers_without_body(server, browser):
    page = await browser.open(str(server.make_url('/')), method='HEAD')

    assert page.get_response_header('server') == 'TestServer/1.0'
    assert page.get_response_header('X-Missing') is None
    assert page.get_links() == {}


@pytest.mark.asyncio
async def test_user_agent_and_headers_are_sent(server, browser):
    page = await browser.open(str(server.make_url('/echo')))

    assert page.get_links()["href"] == [str(server.make_url("/ua/webspider-test?token=abc123"))]
    assert browser.fetcher.stats["successful_requests"] == 1


@pytest.mark.asyncio
async def test_http_error_raises_fetch_error(server, browser):
    url = str(server.make_url('/missing.html'))
    with pytest.raises(FetchError) as excinfo:
        await browser.open(url)

    assert excinfo.value.url == url
    assert excinfo.value.reason == "HTTP error 404"


@pytest.mark.asyncio
async def test_unreachable_host_raises_fetch_error(browser):
    with pytest.raises(FetchError):
        await browser.open("http://127.0.0.1:1/")


@pytest.mark.asyncio
async def test_non_html_page_has_no_links(server, browser):
    page = await browser.open(str(server.make_url('/logo.png')))

    assert page.parsed is None
    assert page.get_links() == {}
    assert page.get_forms() == []


@pytest.mark.asyncio
async def test_download_writes_file(server, browser, tmp_path):
    destination = tmp_path / "nested" / "logo.png"

    assert await browser.download(str(server.make_url('/logo.png')), destination)
    assert destination.read_bytes() == b"\x89PNG fake image"
    assert browser.fetcher.stats['files_downloaded'] == 1


@pytest.mark.asyncio
async def test_failed_download_leaves_no_file(server, browser, tmp_path):
    destination = tmp_path / "missing.html"

    assert not await browser.download(str(server.make_url('/missing.html')), destination)
    assert not destination.exists()
