import datetime
import json
import random
import unittest

import httpx

from helpers import RecordingSleep, no_metrics
from movie_watchlist.models import MIN_RELEASE_DATE
from movie_watchlist.services.errors import ExternalServiceError, InvalidArgumentError, RateLimitError
from movie_watchlist.services.tmdb_client import FEATURED_ENDPOINTS, TmdbClient, parse_release_date


def _movie_dto(tmdb_id, **overrides):
    dto = {
        "id": tmdb_id,
        "title": f"Movie {tmdb_id}",
        "overview": "",
        "poster_path": f"/poster{tmdb_id}.jpg",
        "release_date": "2010-07-16",
        "vote_average": 8.0,
        "vote_count": 100,
        "popularity": 10.0,
        "genre_ids": [28],
    }
    dto.update(overrides)
    return dto


class ScriptedHandler:
    """MockTransport handler answering from a list of responses, recording each request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        # fresh copy so a repeated answer is never a consumed response
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)


class TmdbClientTestCase(unittest.IsolatedAsyncioTestCase):
    def make_client(self, handler, **kwargs):
        self.http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.sleep = RecordingSleep()
        kwargs.setdefault("sleep", self.sleep)
        return TmdbClient(
            api_key="test-key",
            base_url="https://tmdb.test/3",
            image_base_url="https://img.test/t/p",
            http_client=self.http,
            max_attempts=3,
            base_delay_ms=1000,
            counter=no_metrics,
            **kwargs,
        )

    async def asyncTearDown(self):
        if getattr(self, "http", None) is not None:
            await self.http.aclose()


class TestBackoff(TmdbClientTestCase):
    async def test_two_rate_limits_then_success(self):
        handler = ScriptedHandler(
            httpx.Response(429),
            httpx.Response(429),
            httpx.Response(200, json={"results": [_movie_dto(1)]}),
        )
        client = self.make_client(handler)

        movies = await client.search("heat")

        self.assertEqual([m.tmdb_id for m in movies], [1])
        self.assertEqual(len(handler.requests), 3)
        self.assertEqual(self.sleep.calls, [1.0, 2.0])
        self.assertGreaterEqual(sum(self.sleep.calls), 3.0)

    async def test_persistent_rate_limit_raises_rate_limit_error(self):
        handler = ScriptedHandler(httpx.Response(429))
        client = self.make_client(handler)

        with self.assertRaises(RateLimitError) as ctx:
            await client.search("heat")

        self.assertNotIsInstance(ctx.exception, ExternalServiceError)
        self.assertEqual(len(handler.requests), 3)
        self.assertEqual(self.sleep.calls, [1.0, 2.0])
        # no Retry-After header: the hint is the next backoff delay
        self.assertEqual(ctx.exception.retry_after_seconds, 4.0)

    async def test_retry_after_header_is_reported(self):
        handler = ScriptedHandler(httpx.Response(429, headers={"Retry-After": "7"}))
        client = self.make_client(handler)

        with self.assertRaises(RateLimitError) as ctx:
            await client.get_details(550)

        self.assertEqual(ctx.exception.retry_after_seconds, 7.0)

    async def test_server_error_is_not_retried(self):
        handler = ScriptedHandler(httpx.Response(500, text="boom"))
        client = self.make_client(handler)

        with self.assertRaises(ExternalServiceError) as ctx:
            await client.get_popular()

        self.assertEqual(ctx.exception.status_code, 500)
        self.assertEqual(ctx.exception.body, "boom")
        self.assertEqual(len(handler.requests), 1)
        self.assertEqual(self.sleep.calls, [])

    async def test_unauthorized_is_external_service_error(self):
        handler = ScriptedHandler(httpx.Response(401, json={"status_message": "Invalid API key"}))
        client = self.make_client(handler)

        with self.assertRaises(ExternalServiceError) as ctx:
            await client.search("heat")
        self.assertEqual(ctx.exception.status_code, 401)

    async def test_transport_failure_is_external_service_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self.make_client(handler)

        with self.assertRaises(ExternalServiceError) as ctx:
            await client.search("heat")
        self.assertIsNone(ctx.exception.status_code)


class TestCatalogOperations(TmdbClientTestCase):
    async def test_search_builds_authenticated_escaped_url(self):
        handler = ScriptedHandler(httpx.Response(200, json={"results": []}))
        client = self.make_client(handler)

        movies = await client.search("star wars & co", page=2)

        self.assertEqual(movies, [])
        url = handler.requests[0].url
        self.assertEqual(url.host, "tmdb.test")
        self.assertEqual(url.path, "/3/search/movie")
        self.assertEqual(url.params["api_key"], "test-key")
        self.assertEqual(url.params["query"], "star wars & co")
        self.assertEqual(url.params["page"], "2")

    def test_build_url_percent_encodes_spaces(self):
        client = TmdbClient(api_key="k", base_url="https://tmdb.test/3/", counter=no_metrics,
                            http_client=httpx.AsyncClient())
        self.http = client._client
        self.assertEqual(
            client.build_url("search/movie", query="the matrix", page=1, year=None),
            "https://tmdb.test/3/search/movie?api_key=k&query=the%20matrix&page=1",
        )

    async def test_search_orders_by_vote_count(self):
        handler = ScriptedHandler(httpx.Response(200, json={"results": [
            _movie_dto(1, vote_count=10),
            _movie_dto(2, vote_count=5000),
            _movie_dto(3, vote_count=300),
        ]}))
        client = self.make_client(handler)

        movies = await client.search("x")

        self.assertEqual([m.tmdb_id for m in movies], [2, 3, 1])

    async def test_details_not_found_returns_none(self):
        handler = ScriptedHandler(httpx.Response(404, json={"status_message": "not found"}))
        client = self.make_client(handler)

        self.assertIsNone(await client.get_details(999999))
        self.assertEqual(len(handler.requests), 1)

    async def test_details_empty_body_returns_none(self):
        handler = ScriptedHandler(httpx.Response(200, content=b""))
        client = self.make_client(handler)

        self.assertIsNone(await client.get_details(1))

    async def test_details_include_credits_and_videos(self):
        payload = _movie_dto(
            27205,
            title="Inception",
            genre_ids=None,
            genres=[{"id": 28, "name": "Action"}, {"id": 878, "name": "Science Fiction"}],
            credits={"cast": [{"name": "Leonardo DiCaprio"}]},
            videos={"results": [{"key": "abc", "site": "YouTube"}]},
        )
        handler = ScriptedHandler(httpx.Response(200, json=payload))
        client = self.make_client(handler)

        movie = await client.get_details(27205)

        request = handler.requests[0]
        self.assertEqual(request.url.path, "/3/movie/27205")
        self.assertEqual(request.url.params["append_to_response"], "credits,videos")
        self.assertEqual(movie.title, "Inception")
        self.assertEqual(movie.genres, ["Action", "Science Fiction"])
        self.assertEqual(json.loads(movie.credits_json)["cast"][0]["name"], "Leonardo DiCaprio")
        self.assertEqual(json.loads(movie.videos_json), [{"key": "abc", "site": "YouTube"}])

    async def test_get_by_genre_uses_discover(self):
        handler = ScriptedHandler(httpx.Response(200, json={"results": [_movie_dto(5)]}))
        client = self.make_client(handler)

        movies = await client.get_by_genre("COMEDY", page=3)

        self.assertEqual(len(movies), 1)
        url = handler.requests[0].url
        self.assertEqual(url.path, "/3/discover/movie")
        self.assertEqual(url.params["with_genres"], "35")
        self.assertEqual(url.params["page"], "3")

    async def test_get_by_genre_unknown_name_makes_no_request(self):
        handler = ScriptedHandler(httpx.Response(200, json={"results": []}))
        client = self.make_client(handler)

        for name in ("space opera", " action", ""):
            with self.assertRaises(InvalidArgumentError) as ctx:
                await client.get_by_genre(name)
            self.assertIn("Invalid genre", str(ctx.exception))
        self.assertEqual(handler.requests, [])


class TestPopular(TmdbClientTestCase):
    async def test_uses_random_endpoint_page_and_order(self):
        results = [_movie_dto(i) for i in range(1, 6)]
        seen = set()
        for seed in range(60):
            handler = ScriptedHandler(httpx.Response(200, json={"results": results}))
            client = self.make_client(handler, rng=random.Random(seed))

            movies = await client.get_popular()

            url = handler.requests[0].url
            endpoint = url.path[len("/3/"):]
            self.assertIn(endpoint, FEATURED_ENDPOINTS)
            self.assertIn(int(url.params["page"]), (1, 2, 3))
            self.assertEqual(sorted(m.tmdb_id for m in movies), [1, 2, 3, 4, 5])
            seen.add(endpoint)
            await self.http.aclose()

        self.assertEqual(seen, set(FEATURED_ENDPOINTS))

    async def test_results_are_shuffled_with_client_rng(self):
        results = [_movie_dto(i) for i in range(1, 21)]
        handler = ScriptedHandler(httpx.Response(200, json={"results": results}))
        client = self.make_client(handler, rng=random.Random(1234))

        movies = await client.get_popular()

        expected = list(range(1, 21))
        rng = random.Random(1234)
        rng.randrange(len(FEATURED_ENDPOINTS))
        rng.randint(1, 3)
        rng.shuffle(expected)
        self.assertEqual([m.tmdb_id for m in movies], expected)


class TestMapping(unittest.TestCase):
    def setUp(self):
        self.client = TmdbClient(
            api_key="k",
            image_base_url="https://img.test/t/p/",
            http_client=httpx.AsyncClient(),
            counter=no_metrics,
        )

    def test_missing_fields_get_defaults(self):
        movie = self.client.map_movie({"id": 7, "title": "Untitled", "poster_path": None, "genre_ids": [28, 99999, 878]})
        self.assertEqual(movie.tmdb_id, 7)
        self.assertEqual(movie.release_date, MIN_RELEASE_DATE)
        self.assertIsNone(movie.release_year)
        self.assertEqual(movie.poster_path, "")
        self.assertEqual(movie.vote_count, 0)
        self.assertEqual(movie.genres, ["Action", "Science Fiction"])

    def test_parse_release_date(self):
        self.assertEqual(parse_release_date("2010-07-16"), datetime.date(2010, 7, 16))
        self.assertEqual(parse_release_date(""), MIN_RELEASE_DATE)
        self.assertEqual(parse_release_date(None), MIN_RELEASE_DATE)
        self.assertEqual(parse_release_date("soon"), MIN_RELEASE_DATE)

    def test_poster_url(self):
        self.assertEqual(self.client.poster_url("/abc.jpg"), "https://img.test/t/p/w500/abc.jpg")
        self.assertEqual(self.client.poster_url("/abc.jpg", "original"), "https://img.test/t/p/original/abc.jpg")
        self.assertEqual(self.client.poster_url("", "w185"), "https://img.test/t/p/w185")
        self.assertEqual(self.client.poster_url(None), "https://img.test/t/p/w500")
        self.assertEqual(self.client.backdrop_url("/b.jpg"), "https://img.test/t/p/w1280/b.jpg")


if __name__ == "__main__":
    unittest.main()
