"""
REFLECTION SERVICE TESTS (Stage 2.1)

Reflections are owner-scoped free text and never touch signals,
consent or Safe Mode.
"""
import pytest

from behavioral_sandbox.exceptions import EmptyReflectionError, NotFoundError, ValidationError

from conftest import at, make_event

# Configure pytest-asyncio to use function scope
pytestmark = pytest.mark.asyncio(loop_scope="function")


class TestCreate:
    async def test_create_and_read_back(self, reflections, user_id):
        entry = await reflections.create_reflection(
            user_id,
            "Quiet week, mostly reading.",
            user_tags=[" reading ", "week", "reading", ""],
            self_reported_context={"energy": "low"},
        )

        assert entry.content == "Quiet week, mostly reading."
        assert entry.user_tags == ["reading", "week"]
        assert entry.self_reported_context == {"energy": "low"}

        fetched = await reflections.get_reflection(user_id, entry.id)
        assert fetched == entry

    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    async def test_empty_content_rejected(self, reflections, user_id, content):
        with pytest.raises(EmptyReflectionError):
            await reflections.create_reflection(user_id, content)
        assert await reflections.get_reflections(user_id) == []

    async def test_non_string_tag_rejected(self, reflections, user_id):
        with pytest.raises(ValidationError):
            await reflections.create_reflection(user_id, "text", user_tags=[3])


class TestReadScoping:
    async def test_owner_only(self, reflections, user_id, other_user_id):
        entry = await reflections.create_reflection(user_id, "Mine")

        with pytest.raises(NotFoundError):
            await reflections.get_reflection(other_user_id, entry.id)
        assert await reflections.get_reflections(other_user_id) == []

    async def test_filters(self, reflections, user_id):
        linked = await reflections.create_reflection(user_id, "About that signal", linked_signal_id="sig-1")
        tagged = await reflections.create_reflection(user_id, "Tagged", user_tags=["travel"])
        await reflections.create_reflection(user_id, "Plain")

        by_signal = await reflections.get_reflections(user_id, linked_signal_id="sig-1")
        assert [r.id for r in by_signal] == [linked.id]

        by_tag = await reflections.get_reflections(user_id, tag="travel")
        assert [r.id for r in by_tag] == [tagged.id]

        assert len(await reflections.get_reflections(user_id)) == 3
        assert len(await reflections.get_reflections(user_id, limit=2)) == 2

    async def test_invalid_pagination(self, reflections, user_id):
        with pytest.raises(ValidationError):
            await reflections.get_reflections(user_id, limit=0)


class TestUpdateDelete:
    async def test_update_fields(self, reflections, user_id):
        entry = await reflections.create_reflection(user_id, "Draft", user_tags=["a"])

        updated = await reflections.update_reflection(user_id, entry.id, content="Final", user_tags=["b"])

        assert updated.content == "Final"
        assert updated.user_tags == ["b"]
        assert updated.created_at == entry.created_at

    async def test_update_to_empty_rejected(self, reflections, user_id):
        entry = await reflections.create_reflection(user_id, "Draft")
        with pytest.raises(EmptyReflectionError):
            await reflections.update_reflection(user_id, entry.id, content="  ")
        assert (await reflections.get_reflection(user_id, entry.id)).content == "Draft"

    async def test_soft_delete(self, reflections, user_id):
        entry = await reflections.create_reflection(user_id, "Gone soon", user_tags=["x"])

        await reflections.delete_reflection(user_id, entry.id)

        with pytest.raises(NotFoundError):
            await reflections.get_reflection(user_id, entry.id)
        assert await reflections.get_reflections(user_id) == []
        assert await reflections.get_user_tags(user_id) == []
        with pytest.raises(NotFoundError):
            await reflections.delete_reflection(user_id, entry.id)


class TestStats:
    async def test_counts_and_tags(self, reflections, user_id):
        await reflections.create_reflection(user_id, "one", user_tags=["b", "a"], linked_signal_id="sig-1")
        await reflections.create_reflection(user_id, "two", user_tags=["a"])
        gone = await reflections.create_reflection(user_id, "three", user_tags=["z"])
        await reflections.delete_reflection(user_id, gone.id)

        stats = await reflections.get_reflection_stats(user_id)

        assert stats.total_count == 2
        assert stats.linked_to_signal_count == 1
        assert stats.distinct_tag_count == 2
        assert stats.first_created_at is not None
        assert stats.first_created_at <= stats.last_created_at
        assert await reflections.get_user_tags(user_id) == ["a", "b"]

    async def test_empty(self, reflections, user_id):
        stats = await reflections.get_reflection_stats(user_id)
        assert stats.total_count == 0
        assert stats.first_created_at is None


class TestIndependence:
    async def test_reflections_do_not_touch_other_stages(self, reflections, sandbox, display, add_events, user_id):
        await sandbox.grant_consent(user_id, "data_quality_basic")
        await add_events([make_event(user_id, at(days=1))])
        signal = (await sandbox.compute_candidate_signals_for_user(
            user_id, ["capture_coverage"], time_range=(at(), at(days=3))
        )).signals[0]

        before_signals = await sandbox.get_candidate_signals(user_id)
        before_consent = await sandbox.get_consent_flags(user_id)

        entry = await reflections.create_reflection(user_id, "Noted", linked_signal_id=signal.signal_id)
        await reflections.update_reflection(user_id, entry.id, content="Noted again")
        await reflections.delete_reflection(user_id, entry.id)

        assert await sandbox.get_candidate_signals(user_id) == before_signals
        assert await sandbox.get_consent_flags(user_id) == before_consent
        assert await display.get_safe_mode_status(user_id) is None
