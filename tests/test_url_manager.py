from urllib.parse import parse_qs, urlsplit

from tangleplay.backend.network_handlers.url_manager import URLManager, basic_token, stream_url


def test_basic_token_is_base64_of_user_and_password():
    assert basic_token("user", "pass") == "dXNlcjpwYXNz"
    assert basic_token("", "") == "Og=="


def test_stream_url_query_encodes_identifier_and_path():
    url = stream_url("http://localhost:1337/", "magnet:?xt=urn:btih:abc&dn=x", "Bundle/My Movie.mkv")

    parts = urlsplit(url)
    assert parts.scheme == "http"
    assert parts.netloc == "localhost:1337"
    assert parts.path == "/stream"
    assert parse_qs(parts.query) == {
        "magnet": ["magnet:?xt=urn:btih:abc&dn=x"],
        "path": ["Bundle/My Movie.mkv"],
    }


def test_stream_url_resolves_against_host_root():
    url = stream_url("https://gateway.example/api/", "id", "a.mkv")

    assert urlsplit(url).path == "/stream"
    assert url.startswith("https://gateway.example/stream?")


def test_build_adds_basic_auth_header_and_query():
    urlm = URLManager("http://localhost:1337", "user", "pass")

    url, headers = urlm.build("/info", {"magnet": "abc"})

    assert url == "http://localhost:1337/info?magnet=abc"
    assert headers == {"Authorization": "Basic dXNlcjpwYXNz"}


def test_build_without_credentials_sends_no_auth_header():
    urlm = URLManager("http://localhost:1337/")

    url, headers = urlm.build("info")

    assert url == "http://localhost:1337/info"
    assert headers == {}


def test_build_keeps_absolute_urls():
    urlm = URLManager("http://localhost:1337/", "u", "p")
    target = "http://other.example/stream?magnet=x&path=y"

    url, _ = urlm.build(target)

    assert urlsplit(url).netloc == "other.example"
    assert parse_qs(urlsplit(url).query) == {"magnet": ["x"], "path": ["y"]}
