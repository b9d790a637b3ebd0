"""Tests for the MatchingService facade: discovery, requests, history,
statistics, ratings and event publication."""
import uuid
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from academically.database import Base
from academically.errors import (
    SelfMatchError,
    UnauthorizedTransition,
    UserNotFound,
    UserNotInMatchError,
    ValidationError,
)
from academically.models.match import Match
from academically.schemas.profile import Location, StudyPreferences
from academically.schemas.user import UserCreate
from academically.services.directory_service import UserDirectory
from academically.services.matching_service import MatchingService
from academically.services.notification_service import MatchEventPublisher, drain_events


@pytest.fixture
def publisher():
    return AsyncMock(spec=MatchEventPublisher)


@pytest.fixture
def service(db_session, publisher, clock):
    return MatchingService(db_session, publisher=publisher, clock=clock)


def _payload(email: str) -> UserCreate:
    return UserCreate(
        email=email,
        display_name="Student",
        university="State University",
        year="2nd Year",
        major="Computer Science",
        courses=["CS101"],
        verified=True,
    )


async def _weak_student(create_student):
    """A student with nothing in common with the default fixture student."""
    return await create_student(
        courses=["ART300"],
        study_preferences=StudyPreferences(
            study_intensity=1,
            preferred_group_size=4,
            study_environment="lively",
            study_methods=["videos"],
            study_location="in_person",
            academic_goals=["networking"],
        ),
        availability={"sunday": ["night"]},
        location=Location(campus="Far", city="Austin", state="TX"),
    )


# ──────────────────────────────────────────────────────────────────────────────
# find_matches / get_compatibility
# ──────────────────────────────────────────────────────────────────────────────

class TestFindMatches:

    @pytest.mark.asyncio
    async def test_ranks_filters_and_dedups(self, service, create_student):
        me = await create_student()
        strong = await create_student()
        await _weak_student(create_student)
        already = await create_student()
        await create_student(verified=False)
        await service.create_match_request(me.id, already.id)

        ranked = await service.find_matches(me.id)

        assert [r.candidate.id for r in ranked] == [strong.id]
        assert ranked[0].score == 1.0
        assert ranked[0].common_courses == ["CS101", "MATH201"]

    @pytest.mark.asyncio
    async def test_blocked_users_are_never_suggested(self, service, create_student):
        me = await create_student()
        blocked = await create_student()
        blocker = await create_student()
        await service.block_user(me.id, blocked.id)
        await service.block_user(blocker.id, me.id)

        assert await service.find_matches(me.id) == []

        assert await service.unblock_user(me.id, blocked.id) is True
        assert [r.candidate.id for r in await service.find_matches(me.id)] == [blocked.id]

    @pytest.mark.asyncio
    async def test_limit_truncates(self, service, create_student):
        me = await create_student()
        for _ in range(3):
            await create_student()

        assert len(await service.find_matches(me.id, limit=2)) == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, 51])
    async def test_limit_bounds(self, service, create_student, limit):
        me = await create_student()
        with pytest.raises(ValidationError):
            await service.find_matches(me.id, limit=limit)

    @pytest.mark.asyncio
    async def test_malformed_filters(self, service, create_student):
        me = await create_student()
        with pytest.raises(ValidationError):
            await service.find_matches(me.id, filters={"min_reputation": "high"})

    @pytest.mark.asyncio
    async def test_unknown_requester(self, service):
        with pytest.raises(UserNotFound):
            await service.find_matches(uuid.uuid4())


class TestGetCompatibility:

    @pytest.mark.asyncio
    async def test_pair_breakdown(self, service, create_student):
        a = await create_student()
        b = await create_student(courses=["CS101", "PHYS100"])

        result = await service.get_compatibility(a.id, b.id)

        assert result.breakdown["course_overlap"] == pytest.approx(0.3333)
        assert result.common_courses == ["CS101"]

    @pytest.mark.asyncio
    async def test_self(self, service, create_student):
        a = await create_student()
        with pytest.raises(SelfMatchError):
            await service.get_compatibility(a.id, a.id)


# ──────────────────────────────────────────────────────────────────────────────
# create / respond
# ──────────────────────────────────────────────────────────────────────────────

class TestRequests:

    @pytest.mark.asyncio
    async def test_create_publishes_event(self, service, publisher, create_student):
        a = await create_student()
        b = await create_student()

        read = await service.create_match_request(a.id, b.id, message="Hi!")

        assert read.status == "pending"
        assert read.initiated_by == a.id
        assert read.other_user_id == b.id
        assert read.message == "Hi!"
        assert read.is_expired is False
        assert read.age_in_days == 0
        await drain_events()
        publisher.on_match_created.assert_awaited_once()
        (match,) = publisher.on_match_created.await_args.args
        assert match.id == read.match_id

    @pytest.mark.asyncio
    async def test_accept_and_decline_events(self, service, publisher, create_student):
        a = await create_student()
        b = await create_student()
        c = await create_student()
        first = await service.create_match_request(a.id, b.id)
        second = await service.create_match_request(a.id, c.id)

        accepted = await service.respond_to_match(first.match_id, b.id, "accept")
        declined = await service.respond_to_match(second.match_id, c.id, "decline")

        assert accepted.status == "accepted"
        assert accepted.other_user_id == a.id
        assert accepted.responded_at is not None
        assert declined.status == "rejected"
        await drain_events()
        publisher.on_match_accepted.assert_awaited_once()
        publisher.on_match_declined.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_action(self, service, publisher, create_student):
        a = await create_student()
        b = await create_student()
        read = await service.create_match_request(a.id, b.id)

        with pytest.raises(ValidationError):
            await service.respond_to_match(read.match_id, b.id, "maybe")

        await drain_events()
        publisher.on_match_accepted.assert_not_awaited()
        publisher.on_match_declined.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_transition_publishes_nothing(self, service, publisher, create_student):
        a = await create_student()
        b = await create_student()
        outsider = await create_student()
        read = await service.create_match_request(a.id, b.id)

        with pytest.raises(UnauthorizedTransition):
            await service.respond_to_match(read.match_id, outsider.id, "accept")

        await drain_events()
        publisher.on_match_accepted.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publisher_failure_keeps_state_change(self, service, publisher, create_student):
        publisher.on_match_created.side_effect = RuntimeError("broker down")
        a = await create_student()
        b = await create_student()

        read = await service.create_match_request(a.id, b.id)
        await drain_events()

        publisher.on_match_created.assert_awaited_once()
        stored = await service.repository.get(read.match_id)
        assert stored is not None
        assert stored.status == "pending"

    @pytest.mark.asyncio
    async def test_get_match_is_participant_only(self, service, create_student):
        a = await create_student()
        b = await create_student()
        outsider = await create_student()
        read = await service.create_match_request(a.id, b.id)

        assert (await service.get_match(read.match_id, b.id)).other_user_id == a.id
        with pytest.raises(UserNotInMatchError):
            await service.get_match(read.match_id, outsider.id)

    @pytest.mark.asyncio
    async def test_expired_flag_before_sweep(self, service, create_student, clock):
        a = await create_student()
        b = await create_student()
        read = await service.create_match_request(a.id, b.id)
        clock.advance(days=9)

        view = await service.get_match(read.match_id, a.id)

        assert view.status == "pending"
        assert view.is_expired is True
        assert view.age_in_days == 9

        assert await service.expire_stale_matches() == 1
        assert (await service.get_match(read.match_id, a.id)).status == "expired"


class TestEventsAfterCommit:
    """Events go out only once the match is readable from other connections."""

    @pytest.mark.asyncio
    async def test_subscriber_can_read_the_match(self, tmp_path, clock):
        url = f"sqlite+aiosqlite:///{tmp_path / 'events.db'}"
        writer = create_async_engine(url)
        reader = create_async_engine(url)
        seen: dict[str, int] = {}

        class CountingPublisher(MatchEventPublisher):
            async def on_match_created(self, match):
                async with reader.connect() as conn:
                    seen["created"] = await conn.scalar(select(func.count()).select_from(Match))

            async def on_match_accepted(self, match):
                async with reader.connect() as conn:
                    seen["accepted"] = await conn.scalar(
                        select(func.count()).select_from(Match).where(Match.status == "accepted")
                    )

        try:
            async with writer.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            factory = async_sessionmaker(writer, class_=AsyncSession, expire_on_commit=False)
            async with factory() as session:
                directory = UserDirectory(session)
                a = await directory.create_user(_payload("ev1@example.edu"))
                b = await directory.create_user(_payload("ev2@example.edu"))
                await session.commit()

                service = MatchingService(session, publisher=CountingPublisher(), clock=clock)
                read = await service.create_match_request(a.id, b.id)
                await drain_events()
                await service.respond_to_match(read.match_id, b.id, "accept")
                await drain_events()

            assert seen == {"created": 1, "accepted": 1}
        finally:
            await writer.dispose()
            await reader.dispose()


# ──────────────────────────────────────────────────────────────────────────────
# list_matches / get_match_stats
# ──────────────────────────────────────────────────────────────────────────────

class TestHistory:

    @pytest.mark.asyncio
    async def test_paging(self, service, create_student):
        me = await create_student()
        for _ in range(3):
            other = await create_student()
            await service.create_match_request(me.id, other.id)

        first = await service.list_matches(me.id, page=1, limit=2)
        second = await service.list_matches(me.id, page=2, limit=2)

        assert first.total == 3
        assert first.total_pages == 2
        assert len(first.matches) == 2
        assert first.has_next is True and first.has_prev is False
        assert len(second.matches) == 1
        assert second.has_next is False and second.has_prev is True
        ids = {m.match_id for m in first.matches} | {m.match_id for m in second.matches}
        assert len(ids) == 3

    @pytest.mark.asyncio
    async def test_status_filter_and_sort(self, service, create_student):
        me = await create_student()
        close = await create_student()
        far = await _weak_student(create_student)
        accepted = await service.create_match_request(me.id, close.id)
        await service.create_match_request(me.id, far.id)
        await service.respond_to_match(accepted.match_id, close.id, "accept")

        pending = await service.list_matches(me.id, status="pending")
        assert [m.other_user_id for m in pending.matches] == [far.id]

        by_score = await service.list_matches(me.id, sort_by="compatibility_score", sort_order="asc")
        scores = [m.compatibility_score for m in by_score.matches]
        assert scores == sorted(scores)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"status": "archived"},
            {"page": 0},
            {"limit": 101},
            {"sort_by": "display_name"},
            {"sort_order": "sideways"},
        ],
    )
    async def test_invalid_listing_arguments(self, service, create_student, kwargs):
        me = await create_student()
        with pytest.raises(ValidationError):
            await service.list_matches(me.id, **kwargs)

    @pytest.mark.asyncio
    async def test_empty_history(self, service, create_student):
        me = await create_student()
        page = await service.list_matches(me.id)
        assert page.total == 0
        assert page.total_pages == 0
        assert page.matches == []

    @pytest.mark.asyncio
    async def test_stats(self, service, create_student):
        me = await create_student()
        b = await create_student()
        c = await create_student()
        d = await create_student()
        first = await service.create_match_request(me.id, b.id)
        second = await service.create_match_request(me.id, c.id)
        incoming = await service.create_match_request(d.id, me.id)
        await service.respond_to_match(incoming.match_id, me.id, "accept")

        stats = await service.get_match_stats(me.id)

        assert stats.by_status == {"pending": 2, "accepted": 1, "rejected": 0, "expired": 0}
        assert stats.total == 3
        assert stats.sent == 2
        assert stats.received == 1
        expected = (
            first.compatibility_score + second.compatibility_score + incoming.compatibility_score
        ) / 3
        assert stats.avg_compatibility == pytest.approx(round(expected, 2))

    @pytest.mark.asyncio
    async def test_stats_without_matches(self, service, create_student):
        me = await create_student()
        stats = await service.get_match_stats(me.id)
        assert stats.total == 0
        assert stats.avg_compatibility == 0.0


# ──────────────────────────────────────────────────────────────────────────────
# rate_partner
# ──────────────────────────────────────────────────────────────────────────────

class TestRatePartner:

    @pytest.mark.asyncio
    async def test_rating_updates_reputation(self, service, create_student):
        a = await create_student()
        b = await create_student()
        read = await service.create_match_request(a.id, b.id)

        first = await service.rate_partner(a.id, b.id, 4, match_id=read.match_id, feedback="Great")
        second = await service.rate_partner(a.id, b.id, 3)

        assert first.new_reputation == pytest.approx(4.0)
        assert first.ratings_count == 1
        assert second.new_reputation == pytest.approx(3.5)
        assert second.ratings_count == 2

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6])
    async def test_rating_out_of_range(self, service, create_student, rating):
        a = await create_student()
        b = await create_student()
        with pytest.raises(ValidationError):
            await service.rate_partner(a.id, b.id, rating)

    @pytest.mark.asyncio
    async def test_cannot_rate_self(self, service, create_student):
        a = await create_student()
        with pytest.raises(ValidationError):
            await service.rate_partner(a.id, a.id, 5)

    @pytest.mark.asyncio
    async def test_unknown_partner(self, service, create_student):
        a = await create_student()
        with pytest.raises(UserNotFound):
            await service.rate_partner(a.id, uuid.uuid4(), 5)

    @pytest.mark.asyncio
    async def test_partner_must_be_in_match(self, service, create_student):
        a = await create_student()
        b = await create_student()
        c = await create_student()
        read = await service.create_match_request(a.id, b.id)

        with pytest.raises(UserNotInMatchError):
            await service.rate_partner(a.id, c.id, 5, match_id=read.match_id)
        with pytest.raises(UserNotInMatchError):
            await service.rate_partner(c.id, b.id, 5, match_id=read.match_id)
