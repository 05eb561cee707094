import pytest
import requests

from listing_sweep.vendors import listing_api


class DummyResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"http error {self.status_code}")

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class DummySession:
    def __init__(self):
        self.calls = []
        self.response = DummyResponse()

    def get(self, url, timeout=None):
        self.calls.append(("GET", url, None, timeout))
        return self.response

    def post(self, url, params=None, json=None, timeout=None):
        self.calls.append(("POST", url, json, timeout))
        return self.response


@pytest.fixture(autouse=True)
def patch_session(monkeypatch):
    session = DummySession()
    monkeypatch.setattr(listing_api, "_SESSION", session)
    return session


def test_fetch_page_returns_html(patch_session):
    patch_session.response = DummyResponse(text="<html></html>")
    assert listing_api.fetch_page("https://listings.test/homes/") == "<html></html>"
    assert patch_session.calls[0][3] == listing_api.REQUEST_TIMEOUT


def test_fetch_page_wraps_http_errors(patch_session):
    patch_session.response = DummyResponse(status_code=403)
    with pytest.raises(listing_api.PageLoadError):
        listing_api.fetch_page("https://listings.test/homes/")


def test_query_entity_returns_property(patch_session):
    patch_session.response = DummyResponse(payload={"data": {"property": {"zpid": 123}}})

    prop = listing_api.query_entity("123", "qid", "v1", base_url="https://listings.test")

    assert prop == {"zpid": 123}
    method, url, body, _ = patch_session.calls[0]
    assert url == "https://listings.test/graphql/"
    assert body["queryId"] == "qid"
    assert body["variables"]["zpid"] == 123


def test_query_entity_requires_credentials():
    with pytest.raises(listing_api.ListingApiError):
        listing_api.query_entity("123", "", "")


def test_query_entity_missing_property(patch_session):
    patch_session.response = DummyResponse(payload={"errors": ["nope"]})
    with pytest.raises(listing_api.ListingApiError):
        listing_api.query_entity("123", "qid", "v1")


def test_query_entity_non_json(patch_session):
    patch_session.response = DummyResponse(payload=None)
    with pytest.raises(listing_api.ListingApiError):
        listing_api.query_entity("123", "qid", "v1")
