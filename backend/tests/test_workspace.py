"""
Tests for the client-side sessions.

The ScriptoriumClient talks to the real app through httpx.ASGITransport, so
these exercise the editor, parts and reader flows end to end against the
in-memory database and the fake upstream.
"""
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from scriptorium.workspace import (
    ERROR_MARKER,
    NEW_CHAPTER_CONTENT,
    NEW_CHAPTER_TITLE,
    EditorSession,
    PartsSession,
    ReaderView,
    ScriptoriumAPIError,
    ScriptoriumClient,
)
from conftest import asgi_transport, sse_body, sse_frame

PEER_CLOSED = "peer closed connection without sending complete message body (incomplete chunked read)"


def _client(app):
    return ScriptoriumClient(base_url="http://testserver", transport=asgi_transport(app))


async def _broken_stream(**payload):
    yield "partial"
    raise httpx.RemoteProtocolError(PEER_CLOSED)


async def _seed(api, *titles):
    return [
        await api.create_chapter(title, f"<p>{title.lower()} text</p>", order=index)
        for index, title in enumerate(titles)
    ]


# ============================================================
# ScriptoriumClient
# ============================================================

class TestScriptoriumClient:

    @pytest.mark.asyncio
    async def test_error_envelope_raises(self, app_overrides):
        async with _client(app_overrides) as api:
            with pytest.raises(ScriptoriumAPIError) as exc_info:
                await api.update_chapter(404, title="x")
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Chapter not found"

    @pytest.mark.asyncio
    async def test_story_round_trip(self, app_overrides):
        async with _client(app_overrides) as api:
            await api.update_story("Plot")
            assert (await api.get_story())["plotSummary"] == "Plot"

    @pytest.mark.asyncio
    async def test_stream_error_raises(self, app_overrides, upstream):
        upstream.reply("nope", status_code=402)
        async with _client(app_overrides) as api:
            with pytest.raises(ScriptoriumAPIError) as exc_info:
                async for _ in api.stream_ai(content="x", prompt_type="critique"):
                    pass
        assert exc_info.value.status_code == 402
        assert exc_info.value.message == "API request failed: nope"


# ============================================================
# EditorSession
# ============================================================

class TestEditorSession:

    @pytest.mark.asyncio
    async def test_load_activates_first_chapter(self, app_overrides):
        async with _client(app_overrides) as api:
            await api.create_chapter("Second", "<p>2</p>", order=1)
            await api.create_chapter("First", "<p>1</p>", order=0)

            editor = EditorSession(api)
            await editor.load()

        assert [c["title"] for c in editor.chapters] == ["First", "Second"]
        assert editor.active["title"] == "First"
        assert editor.editor_content == "<p>1</p>"
        assert editor.story["plotSummary"]

    @pytest.mark.asyncio
    async def test_empty_manuscript(self, app_overrides):
        async with _client(app_overrides) as api:
            editor = EditorSession(api)
            await editor.load()
        assert editor.active is None
        assert editor.editor_content == ""

    @pytest.mark.asyncio
    async def test_add_chapter_appends_placeholder(self, app_overrides):
        async with _client(app_overrides) as api:
            await _seed(api, "One")
            editor = EditorSession(api)
            await editor.load()

            chapter = await editor.add_chapter()

        assert chapter["title"] == NEW_CHAPTER_TITLE
        assert chapter["content"] == NEW_CHAPTER_CONTENT
        assert chapter["order"] == 1
        assert editor.active["id"] == chapter["id"]

    @pytest.mark.asyncio
    async def test_save_writes_title_and_content(self, app_overrides):
        async with _client(app_overrides) as api:
            await _seed(api, "One")
            editor = EditorSession(api)
            await editor.load()

            editor.set_title("Renamed")
            editor.set_content("<p>Rewritten</p>")
            await editor.save()

            stored = (await api.list_chapters())[0]

        assert stored["title"] == "Renamed"
        assert stored["content"] == "<p>Rewritten</p>"
        assert editor.chapters[0]["title"] == "Renamed"
        assert editor.is_saving is False

    @pytest.mark.asyncio
    async def test_delete_active_falls_back_to_first(self, app_overrides):
        async with _client(app_overrides) as api:
            one, two, three = await _seed(api, "One", "Two", "Three")
            editor = EditorSession(api)
            await editor.load()
            editor.select(two["id"])

            await editor.delete_chapter(two["id"])

        assert [c["id"] for c in editor.chapters] == [one["id"], three["id"]]
        assert editor.active["id"] == one["id"]

    @pytest.mark.asyncio
    async def test_delete_last_chapter_clears_editor(self, app_overrides):
        async with _client(app_overrides) as api:
            (only,) = await _seed(api, "Only")
            editor = EditorSession(api)
            await editor.load()
            await editor.delete_chapter(only["id"])
        assert editor.active is None
        assert editor.editor_content == ""

    @pytest.mark.asyncio
    async def test_reorder_moves_dragged_into_drop_slot(self, app_overrides):
        async with _client(app_overrides) as api:
            one, two, three = await _seed(api, "One", "Two", "Three")
            editor = EditorSession(api)
            await editor.load()

            await editor.reorder(three["id"], one["id"])
            stored = await api.list_chapters()

        assert [c["title"] for c in editor.chapters] == ["Three", "One", "Two"]
        assert [c["title"] for c in stored] == ["Three", "One", "Two"]
        assert [c["order"] for c in stored] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_apply_order_twice_is_stable(self, app_overrides):
        async with _client(app_overrides) as api:
            one, two, three = await _seed(api, "One", "Two", "Three")
            editor = EditorSession(api)
            await editor.load()

            ids = [two["id"], three["id"], one["id"]]
            await editor.apply_order(ids)
            first = await api.list_chapters()
            await editor.apply_order(ids)
            second = await api.list_chapters()

        assert [(c["id"], c["order"]) for c in first] == [(c["id"], c["order"]) for c in second]

    @pytest.mark.asyncio
    async def test_apply_order_reports_failures_after_all_updates(self):
        api = Mock()
        api.update_chapter = AsyncMock(side_effect=[{"id": 1}, ScriptoriumAPIError(500, "Database error")])
        editor = EditorSession(api)
        editor.chapters = [{"id": 1, "order": 0}, {"id": 2, "order": 1}]

        with pytest.raises(ScriptoriumAPIError):
            await editor.apply_order([2, 1])
        assert api.update_chapter.await_count == 2

    @pytest.mark.asyncio
    async def test_build_ai_request(self, app_overrides):
        async with _client(app_overrides) as api:
            one, two = await _seed(api, "One", "Two")
            await api.update_story("S")
            editor = EditorSession(api)
            await editor.load()
            editor.select(two["id"])
            editor.set_content("<p>unsaved</p>")

            payload = editor.build_ai_request("critique")

        assert payload["content"] == "Two\n\nunsaved"
        assert payload["chapter_number"] == 2
        assert payload["story_context"] == "S"
        assert payload["recent_chapters_content"] == "Chapter (Order 1): One\none text"

    @pytest.mark.asyncio
    async def test_run_ai_streams_and_saves_critique(self, app_overrides, upstream):
        upstream.reply(sse_body("Strong ", "opening."))
        chunks = []
        async with _client(app_overrides) as api:
            (one,) = await _seed(api, "One")
            editor = EditorSession(api)
            await editor.load()

            result = await editor.run_ai("critique", on_chunk=chunks.append)
            stored = (await api.list_chapters())[0]

        assert result == "Strong opening."
        assert "".join(chunks) == "Strong opening."
        assert stored["critique"] == "Strong opening."
        assert editor.active["critique"] == "Strong opening."
        assert editor.ai_busy is None

    @pytest.mark.asyncio
    async def test_run_ai_summarize_saves_summary(self, app_overrides, upstream):
        upstream.reply(sse_body("In short."))
        async with _client(app_overrides) as api:
            await _seed(api, "One")
            editor = EditorSession(api)
            await editor.load()
            await editor.run_ai("summarize")
            stored = (await api.list_chapters())[0]
        assert stored["summary"] == "In short."
        assert stored["critique"] is None

    @pytest.mark.asyncio
    async def test_run_ai_failure_appends_marker_and_saves_nothing(self, app_overrides, upstream):
        upstream.reply("overloaded", status_code=503)
        async with _client(app_overrides) as api:
            await _seed(api, "One")
            editor = EditorSession(api)
            await editor.load()

            result = await editor.run_ai("critique")
            stored = (await api.list_chapters())[0]

        assert result.startswith(ERROR_MARKER)
        assert "API request failed: overloaded" in result
        assert stored["critique"] is None
        assert editor.ai_busy is None

    @pytest.mark.asyncio
    async def test_run_ai_mid_stream_failure_keeps_partial_text(self):
        api = Mock()
        api.stream_ai = _broken_stream
        api.update_chapter = AsyncMock()
        editor = EditorSession(api)
        editor.chapters = [{"id": 1, "title": "One", "content": "<p>a</p>", "order": 0}]
        editor.select(1)

        result = await editor.run_ai("critique")

        assert result == "partial" + ERROR_MARKER + PEER_CLOSED
        api.update_chapter.assert_not_awaited()
        assert editor.ai_busy is None

    @pytest.mark.asyncio
    async def test_run_ai_mid_stream_failure_through_app(self, app_overrides, upstream):
        upstream.reply(sse_frame("partial"), httpx.ReadError("connection reset"))
        async with _client(app_overrides) as api:
            await _seed(api, "One")
            editor = EditorSession(api)
            await editor.load()

            result = await editor.run_ai("critique")
            stored = (await api.list_chapters())[0]

        assert ERROR_MARKER in result
        assert stored["critique"] is None
        assert upstream.streams[0].closed

    @pytest.mark.asyncio
    async def test_run_ai_unreadable_save_response_gets_marker(self):
        async def _stream(**payload):
            yield "Fine."

        api = Mock()
        api.stream_ai = _stream
        api.update_chapter = AsyncMock(side_effect=ValueError("Expecting value: line 1 column 1 (char 0)"))
        editor = EditorSession(api)
        editor.chapters = [{"id": 1, "title": "One", "content": "<p>a</p>", "order": 0}]
        editor.select(1)

        result = await editor.run_ai("critique")

        assert result == "Fine." + ERROR_MARKER + "Expecting value: line 1 column 1 (char 0)"
        assert editor.is_saving is False

    @pytest.mark.asyncio
    async def test_run_ai_rejects_unknown_type(self):
        editor = EditorSession(Mock())
        editor.active = {"id": 1, "title": "T", "content": ""}
        with pytest.raises(ValueError):
            await editor.run_ai("rewrite")


# ============================================================
# PartsSession
# ============================================================

class TestPartsSession:

    @pytest.mark.asyncio
    async def test_assign_and_unassign(self, app_overrides):
        async with _client(app_overrides) as api:
            one, two = await _seed(api, "One", "Two")
            session = PartsSession(api)
            await session.load()
            part = await session.add_part(title="Act I")
            session.select_part(part["id"])

            await session.assign(one["id"])
            await session.assign(two["id"])
            assert [c["id"] for c in session.active_part["chapters"]] == [one["id"], two["id"]]

            await session.unassign(one["id"])
            stored = await api.list_parts()

        assert [c["id"] for c in session.active_part["chapters"]] == [two["id"]]
        assert [c["id"] for c in stored[0]["chapters"]] == [two["id"]]
        assert session.parts[0]["chapters"] == session.active_part["chapters"]

    @pytest.mark.asyncio
    async def test_delete_active_part_clears_selection(self, app_overrides):
        async with _client(app_overrides) as api:
            session = PartsSession(api)
            await session.load()
            part = await session.add_part()
            session.select_part(part["id"])

            await session.delete_part(part["id"])

        assert session.parts == []
        assert session.active_part is None

    @pytest.mark.asyncio
    async def test_analyze_sends_selection_in_click_order(self, app_overrides, upstream):
        upstream.reply(sse_body("Consistent."))
        async with _client(app_overrides) as api:
            one, two, three = await _seed(api, "One", "Two", "Three")
            await api.update_story("S")
            session = PartsSession(api)
            await session.load()
            part = await session.add_part(system_instruction="Judge the arc.", chapters=[one["id"], two["id"], three["id"]])
            session.select_part(part["id"])
            session.toggle_selection(three["id"])
            session.toggle_selection(two["id"])
            session.toggle_selection(one["id"])
            session.toggle_selection(one["id"])

            result = await session.analyze()

        assert result == "Consistent."
        assert upstream.last_system_prompt == "Judge the arc."
        user_prompt = upstream.last_user_prompt
        assert "S" in user_prompt
        assert user_prompt.index("Chapter (Order 3): Three") < user_prompt.index("Chapter (Order 2): Two")
        assert "Chapter (Order 1): One" not in user_prompt

    @pytest.mark.asyncio
    async def test_analyze_mid_stream_failure_keeps_partial_text(self):
        api = Mock()
        api.stream_part_ai = _broken_stream
        session = PartsSession(api)
        session.active_part = {
            "id": 1,
            "systemInstruction": "Judge the arc.",
            "chapters": [{"id": 7, "title": "A", "content": "<p>a</p>", "order": 0}],
        }
        session.toggle_selection(7)

        result = await session.analyze()

        assert result == "partial" + ERROR_MARKER + PEER_CLOSED
        assert session.ai_busy is False

    @pytest.mark.asyncio
    async def test_analyze_without_selection_does_nothing(self, app_overrides, upstream):
        async with _client(app_overrides) as api:
            session = PartsSession(api)
            await session.load()
            part = await session.add_part()
            session.select_part(part["id"])
            assert await session.analyze() == ""
        assert upstream.requests == []


# ============================================================
# ReaderView
# ============================================================

class TestReaderView:

    def _reader(self, chapters):
        api = Mock()
        api.list_chapters = AsyncMock(return_value=chapters)
        return ReaderView(api)

    @pytest.mark.asyncio
    async def test_navigation_is_clamped(self):
        reader = self._reader([
            {"id": 2, "title": "Two", "content": "<p>b</p>", "order": 1},
            {"id": 1, "title": "One", "content": "<p>a</p>", "order": 0},
        ])
        await reader.load()

        assert reader.current["title"] == "One"
        assert reader.previous()["title"] == "One"
        assert reader.next()["title"] == "Two"
        assert reader.next()["title"] == "Two"
        assert reader.render_current() == "Two\n\nb"

    @pytest.mark.asyncio
    async def test_empty_story(self):
        reader = self._reader([])
        await reader.load()
        assert reader.current is None
        assert reader.next() is None
        assert reader.render_current() == "This story has no chapters yet."

    @pytest.mark.asyncio
    async def test_render_manuscript(self):
        reader = self._reader([
            {"id": 1, "title": "One", "content": "<p>a</p>", "order": 0},
            {"id": 2, "title": "Two", "content": "<p>b</p>", "order": 1},
        ])
        await reader.load()
        assert reader.render_manuscript() == "One\n\na\n\n\nTwo\n\nb"
