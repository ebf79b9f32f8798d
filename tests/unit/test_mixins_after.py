"""
Tests for the built-in mixins-after.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from embedcore.errors import FetchError, TransportError
from embedcore.models import ImageDimensions, Response, Snippet
from embedcore.plugins.mixins_after import (
    MIXINS_AFTER,
    convert_str_int_after_mixin,
    image_size_after_mixin,
    merge_after_mixin,
    mime_detect_after_mixin,
    resolve_href_after_mixin,
    set_autoplay_after_mixin,
    ssl_force_after_mixin,
    to_number,
)


def with_snippets(env, *snippets):
    env.result.snippets = list(snippets)
    return env


def test_builtin_order():
    assert [step.id for step in MIXINS_AFTER] == [
        "resolve-href",
        "mime-detect",
        "ssl-force",
        "merge",
        "image-size",
        "set-autoplay",
        "convert-str-int",
    ]


@pytest.mark.unit
class TestResolveHref:
    @pytest.mark.asyncio
    async def test_relative_and_protocol_relative(self, make_env):
        env = with_snippets(
            make_env(src="https://example.com/a/page"),
            Snippet(href="img.png"),
            Snippet(href="/root.png"),
            Snippet(href="//cdn.example.net/x.png"),
            Snippet(href="http://other.org/y.png"),
            Snippet(html="<p></p>"),
        )

        await resolve_href_after_mixin(env)

        assert [snippet.href for snippet in env.result.snippets] == [
            "https://example.com/a/img.png",
            "https://example.com/root.png",
            "https://cdn.example.net/x.png",
            "http://other.org/y.png",
            None,
        ]


@pytest.mark.unit
class TestMimeDetect:
    @pytest.mark.asyncio
    async def test_extension_lookup(self, make_env):
        env = with_snippets(make_env(), Snippet(href="https://a/v.webm"), Snippet(type="image", href="https://a/x"))

        await mime_detect_after_mixin(env)

        assert [snippet.type for snippet in env.result.snippets] == ["video/webm", "image"]
        env.engine.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_head_request(self, make_env):
        engine = MagicMock()
        engine.request = AsyncMock(
            return_value=Response(status_code=200, headers={"Content-Type": "text/html; charset=utf-8"})
        )
        env = with_snippets(make_env(engine=engine), Snippet(href="https://a/player", tags=["player"]))

        await mime_detect_after_mixin(env)

        engine.request.assert_awaited_once_with("https://a/player", {"method": "HEAD"})
        snippet = env.result.snippets[0]
        assert snippet.type == "text/html"
        assert snippet.tags == ["player", "html5"]

    @pytest.mark.asyncio
    async def test_untyped_snippets_are_dropped(self, make_env):
        engine = MagicMock()
        engine.request = AsyncMock(return_value=Response(status_code=200, headers={}))
        env = with_snippets(make_env(engine=engine), Snippet(href="https://a/unknown"), Snippet(html="<p></p>"))

        await mime_detect_after_mixin(env)

        assert env.result.snippets == []

    @pytest.mark.asyncio
    async def test_bad_status(self, make_env):
        engine = MagicMock()
        engine.request = AsyncMock(side_effect=TransportError("Bad response code: 403", status_code=403))
        env = with_snippets(make_env(engine=engine), Snippet(href="https://a/x"))

        with pytest.raises(FetchError, match="Mime-detect mixin after handler: Bad response code: 403"):
            await mime_detect_after_mixin(env)

    @pytest.mark.asyncio
    async def test_connection_error_propagates(self, make_env):
        engine = MagicMock()
        engine.request = AsyncMock(side_effect=TransportError("connection refused"))
        env = with_snippets(make_env(engine=engine), Snippet(href="https://a/x"))

        with pytest.raises(TransportError):
            await mime_detect_after_mixin(env)


@pytest.mark.unit
class TestSimplePasses:
    @pytest.mark.asyncio
    async def test_ssl_force(self, make_env):
        env = with_snippets(make_env(), Snippet(href="https://a/x"), Snippet(href="http://a/y"))

        await ssl_force_after_mixin(env)

        assert [snippet.tags for snippet in env.result.snippets] == [["ssl"], []]

    @pytest.mark.asyncio
    async def test_merge_by_href(self, make_env):
        env = with_snippets(
            make_env(),
            Snippet(type="image", href="https://a/1.jpg", tags=["thumbnail", "og"], media={"width": 10}),
            Snippet(type="image", href="https://a/2.jpg", tags=["icon"]),
            Snippet(type="image", href="https://a/1.jpg", tags=["thumbnail", "twitter"], media={"height": 20}),
        )

        await merge_after_mixin(env)

        assert [snippet.model_dump(exclude_none=True) for snippet in env.result.snippets] == [
            {
                "type": "image",
                "href": "https://a/1.jpg",
                "tags": ["thumbnail", "og", "twitter"],
                "media": {"width": 10, "height": 20},
            },
            {"type": "image", "href": "https://a/2.jpg", "tags": ["icon"], "media": {}},
        ]

    @pytest.mark.asyncio
    async def test_set_autoplay(self, make_env):
        env = with_snippets(
            make_env(),
            Snippet(type="text/html", href="https://a/p", tags=["player", "autoplay"]),
            Snippet(type="text/html", href="https://a/q", tags=["player"]),
            Snippet(type="video/mp4", href="https://a/v.mp4", tags=["player", "autoplay"]),
        )

        await set_autoplay_after_mixin(env)

        assert [snippet.media.get("autoplay") for snippet in env.result.snippets] == ["autoplay=1", None, None]


@pytest.mark.unit
class TestConvertStrInt:
    @pytest.mark.parametrize(
        "value, expected",
        [("10", 10.0), ("12.5px", 12.5), (" 7 ", 7.0), ("abc", None), (5, 5), (True, None), ("-3", -3.0)],
    )
    def test_to_number(self, value, expected):
        assert to_number(value) == expected

    @pytest.mark.asyncio
    async def test_numbers_are_converted(self, make_env):
        env = with_snippets(
            make_env(), Snippet(media={"width": "10", "height": "20", "duration": "30", "foo": "40"})
        )

        await convert_str_int_after_mixin(env)

        assert env.result.snippets[0].media == {"width": 10, "height": 20, "duration": 30, "foo": "40"}

    @pytest.mark.asyncio
    async def test_fractions_are_kept(self, make_env):
        env = with_snippets(make_env(), Snippet(media={"width": "10.5", "height": "20"}))

        await convert_str_int_after_mixin(env)

        assert env.result.snippets[0].media == {"width": 10.5, "height": 20}

    @pytest.mark.asyncio
    async def test_bad_values_are_removed(self, make_env):
        env = with_snippets(
            make_env(),
            Snippet(media={"width": "auto", "height": "20", "duration": "-1"}),
            Snippet(media={"width": "10"}),
        )

        await convert_str_int_after_mixin(env)

        assert [snippet.media for snippet in env.result.snippets] == [{}, {}]


@pytest.mark.unit
class TestImageSize:
    @pytest.mark.asyncio
    async def test_missing_sizes_are_filled(self, make_env, engine):
        engine.load_image_size = AsyncMock(return_value=ImageDimensions(64, 48))
        env = with_snippets(
            make_env(engine=engine),
            Snippet(type="image", href="https://a/1.png"),
            Snippet(type="image", href="https://a/2.png", media={"width": 5, "height": 5}),
            Snippet(type="text/html", href="https://a/3.png"),
        )

        await image_size_after_mixin(env)

        engine.load_image_size.assert_awaited_once_with("https://a/1.png")
        assert [snippet.media for snippet in env.result.snippets] == [
            {"width": 64, "height": 48},
            {"width": 5, "height": 5},
            {},
        ]

    @pytest.mark.asyncio
    async def test_extensions_follow_config(self, make_env, engine):
        engine.config.image_size.extensions = [".png"]
        engine.load_image_size = AsyncMock(return_value=ImageDimensions(1, 1))
        env = with_snippets(make_env(engine=engine), Snippet(type="image", href="https://a/1.jpg"))

        await image_size_after_mixin(env)

        engine.load_image_size.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_probe_failure_propagates(self, make_env, engine):
        engine.load_image_size = AsyncMock(side_effect=TransportError("Bad response code: 404", status_code=404))
        env = with_snippets(make_env(engine=engine), Snippet(type="image", href="https://a/1.jpg"))

        with pytest.raises(TransportError):
            await image_size_after_mixin(env)
