import pytest

from logpond.errors import UrlResolutionFailure
from logpond.services.logparser import UrlDecomposer, UrlParts, decompose
from logpond.services.logparser.urls import parse_query

ORIGIN = "https://ex.com"


@pytest.fixture
def urls() -> UrlDecomposer:
    return UrlDecomposer(ORIGIN)


def test_request_target_parts(urls: UrlDecomposer) -> None:
    parts = urls.request("/a.png?x=1")

    assert parts == UrlParts(
        origin="https://ex.com",
        path="/a.png",
        extension="png",
        query="x=1",
        parsed_query={"x": ["1"]},
    )


def test_absolute_referer(urls: UrlDecomposer) -> None:
    parts = urls.referer("https://ex.com/ref?y=2")

    assert parts.origin == "https://ex.com"
    assert parts.path == "/ref"
    assert parts.query == "y=2"
    assert parts.parsed_query == {"y": ["2"]}


def test_relative_referer_resolves_against_origin(urls: UrlDecomposer) -> None:
    parts = urls.referer("/search?q=guide")

    assert parts.origin == "https://ex.com"
    assert parts.path == "/search"


def test_foreign_referer_keeps_its_origin(urls: UrlDecomposer) -> None:
    parts = urls.referer("http://other.org:8080/page.html")

    assert parts.origin == "http://other.org:8080"
    assert parts.extension == "html"


def test_missing_referer_is_empty(urls: UrlDecomposer) -> None:
    assert urls.referer(None).is_empty
    assert urls.referer("").is_empty


def test_repeated_query_keys_keep_order(urls: UrlDecomposer) -> None:
    parts = urls.request("/docs/Guide.PDF?lang=en&lang=fr")

    assert parts.parsed_query == {"lang": ["en", "fr"]}
    assert parts.extension == "pdf"


def test_query_values_are_decoded() -> None:
    assert parse_query("q=hello%20world&r=a+b&empty=") == {
        "q": ["hello world"],
        "r": ["a b"],
        "empty": [""],
    }


@pytest.mark.parametrize(
    ("target", "extension"),
    [
        ("/", None),
        ("/dir.d/file", None),
        ("/archive.tar.gz", "gz"),
        ("/file.", None),
        ("/IMAGE.JPG?size=2", "jpg"),
    ],
)
def test_extension(urls: UrlDecomposer, target: str, extension: str | None) -> None:
    assert urls.request(target).extension == extension


def test_no_query_is_none(urls: UrlDecomposer) -> None:
    parts = urls.request("/index.html")

    assert parts.query is None
    assert parts.parsed_query is None


def test_leading_double_slash_is_collapsed(urls: UrlDecomposer) -> None:
    parts = urls.request("//wp-login.php")

    assert parts.origin == "https://ex.com"
    assert parts.path == "/wp-login.php"


def test_request_on_another_host_is_empty(urls: UrlDecomposer) -> None:
    assert urls.request("http://other.com/x").is_empty


def test_same_host_with_other_scheme_is_kept(urls: UrlDecomposer) -> None:
    parts = urls.request("http://ex.com/x.js?v=1")

    assert parts.origin == "http://ex.com"
    assert parts.path == "/x.js"
    assert parts.extension == "js"
    assert parts.parsed_query == {"v": ["1"]}


def test_same_host_with_other_port_is_kept(urls: UrlDecomposer) -> None:
    parts = urls.request("https://EX.com:8080/x")

    assert parts.origin == "https://ex.com:8080"
    assert parts.path == "/x"


def test_default_port_is_dropped(urls: UrlDecomposer) -> None:
    parts = urls.request("https://ex.com:443/x")

    assert parts.origin == "https://ex.com"
    assert parts.path == "/x"


def test_non_default_port_origin() -> None:
    urls = UrlDecomposer("https://ex.com:8443")

    assert urls.request("/x").origin == "https://ex.com:8443"


def test_malformed_url_is_empty() -> None:
    assert decompose(ORIGIN, "http://[::1").is_empty


def test_decompose_is_stable() -> None:
    first = decompose(ORIGIN, "/a/b.txt?k=v&k=w")
    second = decompose(ORIGIN, f"{first.origin}{first.path}?{first.query}")

    assert second == first


@pytest.mark.parametrize("origin", ["ftp://ex.com", "ex.com", "https://", "http://ex.com:99999"])
def test_invalid_origin(origin: str) -> None:
    with pytest.raises(UrlResolutionFailure):
        UrlDecomposer(origin)
