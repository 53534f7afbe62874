"""
Address resolution: fallback ordering and address-line construction.
"""
import httpx
import pytest

from sentinel.services.geocoding import AddressResolver, build_address_string


def _ok(lat, lng, **extra):
    return {"status": "OK", "results": [{"geometry": {"location": {"lat": lat, "lng": lng}}, **extra}]}


ZERO_RESULTS = {"status": "ZERO_RESULTS", "results": []}


def make_resolver(responses, api_key="test-key"):
    """responses maps 'geocode'/'places' to a JSON body or an int status code."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        provider = "places" if "/place/" in request.url.path else "geocode"
        seen.append((provider, dict(request.url.params)))
        body = responses.get(provider, ZERO_RESULTS)
        if isinstance(body, int):
            return httpx.Response(body)
        return httpx.Response(200, json=body)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AddressResolver(api_key=api_key, client=client), seen, client


@pytest.mark.asyncio
async def test_geocoder_hit_skips_place_search():
    resolver, seen, client = make_resolver({
        "geocode": _ok(40.1, -75.2, formatted_address="123 Main St, Springfield, USA"),
    })
    result = await resolver.resolve("123 Main Street")
    await client.aclose()

    assert result.lat == 40.1
    assert result.lng == -75.2
    assert result.formatted_address == "123 Main St, Springfield, USA"
    assert result.provider == "geocode"
    assert [p for p, _ in seen] == ["geocode"]
    assert seen[0][1]["address"] == "123 Main Street"
    assert seen[0][1]["key"] == "test-key"


@pytest.mark.asyncio
async def test_falls_back_to_place_search_after_geocoder_miss():
    resolver, seen, client = make_resolver({
        "geocode": ZERO_RESULTS,
        "places": _ok(37.79, -122.39, formatted_address="1 Ferry Building, San Francisco"),
    })
    result = await resolver.resolve("the ferry building")
    await client.aclose()

    assert result is not None
    assert result.provider == "places"
    assert result.formatted_address == "1 Ferry Building, San Francisco"
    assert [p for p, _ in seen] == ["geocode", "places"]
    assert seen[1][1]["query"] == "the ferry building"


@pytest.mark.asyncio
async def test_place_without_formatted_address_uses_name():
    resolver, _, client = make_resolver({
        "places": _ok(1.0, 2.0, name="Central Fountain"),
    })
    result = await resolver.resolve("fountain")
    await client.aclose()

    assert result.formatted_address == "Central Fountain"


@pytest.mark.asyncio
async def test_geocoder_http_error_still_tries_place_search():
    resolver, seen, client = make_resolver({
        "geocode": 500,
        "places": _ok(1.0, 2.0, formatted_address="Somewhere"),
    })
    result = await resolver.resolve("somewhere")
    await client.aclose()

    assert result.formatted_address == "Somewhere"
    assert [p for p, _ in seen] == ["geocode", "places"]


@pytest.mark.asyncio
async def test_both_lookups_failing_returns_none():
    resolver, seen, client = make_resolver({"geocode": ZERO_RESULTS, "places": {"status": "REQUEST_DENIED"}})
    result = await resolver.resolve("nowhere at all")
    await client.aclose()

    assert result is None
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_ok_status_without_results_is_a_miss():
    resolver, seen, client = make_resolver({"geocode": {"status": "OK", "results": []}})
    result = await resolver.resolve("x")
    await client.aclose()

    assert result is None


@pytest.mark.asyncio
@pytest.mark.parametrize("geocode_body", [
    _ok("n/a", 1.0),
    _ok(1.0, 2.0, formatted_address=42),
    {"status": "OK", "results": ["123 Main St"]},
    {"status": "OK", "results": [{"geometry": "somewhere"}]},
    {"status": "OK", "results": {"lat": 1.0}},
])
async def test_unusable_geocoder_answer_falls_through(geocode_body):
    resolver, seen, client = make_resolver({
        "geocode": geocode_body,
        "places": _ok(3.0, 4.0, formatted_address="Main St Plaza"),
    })
    result = await resolver.resolve("123 Main")
    await client.aclose()

    assert result.provider == "places"
    assert (result.lat, result.lng) == (3.0, 4.0)
    assert [p for p, _ in seen] == ["geocode", "places"]


@pytest.mark.asyncio
async def test_unusable_answers_from_both_providers_resolve_to_none():
    resolver, _, client = make_resolver({
        "geocode": _ok("n/a", 1.0),
        "places": _ok(1.0, "east-ish"),
    })
    result = await resolver.resolve("123 Main")
    await client.aclose()

    assert result is None


@pytest.mark.asyncio
async def test_missing_api_key_skips_network():
    resolver, seen, client = make_resolver({}, api_key=None)
    assert await resolver.resolve("123 Main Street") is None
    await client.aclose()
    assert seen == []


@pytest.mark.asyncio
async def test_blank_text_is_not_resolved():
    resolver, seen, client = make_resolver({})
    assert await resolver.resolve("   ") is None
    await client.aclose()
    assert seen == []


def test_address_components_join_in_fixed_order():
    location = {
        "landmark": "near the library",
        "Street": "Main Street",
        "Building_House_Number": "123",
        "State_Province_Town_City": "Springfield",
    }
    assert build_address_string(location) == "123, Main Street, Springfield, near the library"


def test_empty_components_are_skipped():
    location = {"address": {"Building_House_Number": "", "Street": "Elm Street", "landmark": None}}
    assert build_address_string(location) == "Elm Street"


def test_approximate_hint_is_appended_when_new():
    location = {"Street": "Elm Street"}
    assert build_address_string(location, "Downtown Springfield") == "Elm Street, Downtown Springfield"


@pytest.mark.parametrize("hint", ["elm street", "ELM", "Elm Street, Springfield"])
def test_approximate_hint_overlapping_a_component_is_not_repeated(hint):
    location = {"Street": "Elm Street", "State_Province_Town_City": "Springfield"}
    assert build_address_string(location, hint) == "Elm Street, Springfield"


def test_hint_alone_builds_an_address():
    assert build_address_string(None, "Ferry Building") == "Ferry Building"


def test_nothing_to_build():
    assert build_address_string(None) == ""
    assert build_address_string({}) == ""
