import httpx

from markwall.services.screenshot import (
    capture_screenshot,
    is_transient_image_url,
    screenshot_embed_url,
)

API_URL = "https://api.microlink.io"


def _transport(response_factory, seen=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return response_factory(request)

    return httpx.MockTransport(handler)


def test_capture_returns_screenshot_with_reported_dimensions():
    seen = []
    payload = {
        "status": "success",
        "data": {
            "screenshot": {
                "url": "https://iad.microlink.io/abc.png",
                "width": 1280,
                "height": 800,
            }
        },
    }
    shot = capture_screenshot(
        "https://example.com/page",
        api_url=API_URL,
        transport=_transport(lambda request: httpx.Response(200, json=payload), seen),
    )

    assert shot.url == "https://iad.microlink.io/abc.png"
    assert shot.width == 1280
    assert shot.height == 800

    params = seen[0].url.params
    assert params["url"] == "https://example.com/page"
    assert params["screenshot"] == "true"
    assert params["meta"] == "false"
    assert "apiKey" not in params


def test_capture_sends_api_key_when_configured():
    seen = []
    payload = {"status": "success", "data": {"screenshot": {"url": "https://x/y.png"}}}
    capture_screenshot(
        "https://example.com/",
        api_url=API_URL,
        api_key="secret-key",
        transport=_transport(lambda request: httpx.Response(200, json=payload), seen),
    )

    assert seen[0].url.params["apiKey"] == "secret-key"


def test_capture_defaults_missing_dimensions():
    payload = {
        "status": "success",
        "data": {"screenshot": {"url": "https://shots.example/abc.png", "width": 0}},
    }
    shot = capture_screenshot(
        "https://example.com/",
        api_url=API_URL,
        transport=_transport(lambda request: httpx.Response(200, json=payload)),
    )

    assert shot.url == "https://shots.example/abc.png"
    assert (shot.width, shot.height) == (1200, 630)


def test_capture_follows_embed_redirect_location():
    shot = capture_screenshot(
        "https://example.com/",
        api_url=API_URL,
        transport=_transport(
            lambda request: httpx.Response(
                302, headers={"Location": "https://iad.microlink.io/redirected.png"}
            )
        ),
    )

    assert shot.url == "https://iad.microlink.io/redirected.png"
    assert (shot.width, shot.height) == (1200, 630)


def test_capture_returns_none_for_unsuccessful_status():
    payload = {"status": "fail", "message": "could not render"}
    shot = capture_screenshot(
        "https://example.com/",
        api_url=API_URL,
        transport=_transport(lambda request: httpx.Response(200, json=payload)),
    )

    assert shot is None


def test_capture_returns_none_without_screenshot_url():
    payload = {"status": "success", "data": {"screenshot": None}}
    shot = capture_screenshot(
        "https://example.com/",
        api_url=API_URL,
        transport=_transport(lambda request: httpx.Response(200, json=payload)),
    )

    assert shot is None


def test_capture_returns_none_on_http_error():
    shot = capture_screenshot(
        "https://example.com/",
        api_url=API_URL,
        transport=_transport(lambda request: httpx.Response(500, text="boom")),
    )

    assert shot is None


def test_capture_returns_none_on_timeout():
    def raise_timeout(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    shot = capture_screenshot(
        "https://example.com/", api_url=API_URL, transport=_transport(raise_timeout)
    )

    assert shot is None


def test_embed_url_carries_render_options():
    embed = httpx.URL(
        screenshot_embed_url(
            "https://example.com/a?b=c",
            width=800,
            height=600,
            image_type="jpeg",
            api_url=API_URL,
            api_key="k",
        )
    )

    assert embed.host == "api.microlink.io"
    assert embed.params["url"] == "https://example.com/a?b=c"
    assert embed.params["embed"] == "screenshot.url"
    assert embed.params["screenshot.width"] == "800"
    assert embed.params["screenshot.height"] == "600"
    assert embed.params["screenshot.type"] == "jpeg"
    assert embed.params["apiKey"] == "k"


def test_transient_image_url_matches_configured_hosts():
    hosts = ["microlink.io"]

    assert is_transient_image_url("https://iad.microlink.io/abc.png", hosts)
    assert is_transient_image_url("https://microlink.io/abc.png", hosts)
    assert not is_transient_image_url("https://notmicrolink.io/abc.png", hosts)
    assert not is_transient_image_url(
        "https://storage.test/storage/v1/object/public/screenshots/1.jpg", hosts
    )
    assert not is_transient_image_url(None, hosts)
    assert not is_transient_image_url("https://iad.microlink.io/abc.png", [])
