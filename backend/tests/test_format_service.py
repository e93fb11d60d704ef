"""
WhisperLog Backend — Template Store Tests
===========================================

What:  Tests for FormatService against the in-memory database.

What we test:
    ✅ Create / get / update round trip with owner summary
    ✅ Partial updates: omitted fields kept, description/instruction clearable
    ✅ Soft delete hides the template but keeps the row
    ✅ Ownership: other users' templates are NotFound
    ✅ Search, sort and pagination
"""

import uuid

import pytest
from sqlalchemy import select

from conftest import MEETING_TEMPLATE
from whisperlog.exceptions import NotFoundError
from whisperlog.models import UserFormat
from whisperlog.schemas.user_format import FormatListQuery, UserFormatCreate, UserFormatUpdate


class TestCreateAndGet:
    """Tests for create_format and get_format."""

    @pytest.mark.asyncio
    async def test_create_returns_owner_summary(self, services, db_session, user_factory):
        """The response carries the owner's username and email."""
        user = await user_factory("dana")
        data = UserFormatCreate(title="  Standup  ", format=MEETING_TEMPLATE, icon_name="users")

        created = await services.formats.create_format(db_session, user, data)

        assert created.title == "Standup"
        assert created.user.username == "dana"
        assert created.user.email == "dana@example.com"
        assert created.is_active is True
        assert created.instruction is None

        fetched = await services.formats.get_format(db_session, user.id, created.id)
        assert fetched.format == MEETING_TEMPLATE

    @pytest.mark.asyncio
    async def test_get_foreign_template_is_not_found(self, services, db_session, user_factory, format_factory):
        """Ownership is enforced on every read."""
        owner = await user_factory("lee")
        intruder = await user_factory("dana")
        fmt = await format_factory(owner)

        with pytest.raises(NotFoundError):
            await services.formats.get_format(db_session, intruder.id, fmt.id)

    @pytest.mark.asyncio
    async def test_get_unknown_id_is_not_found(self, services, db_session, user_factory):
        """Random ids are 404s."""
        user = await user_factory()
        with pytest.raises(NotFoundError):
            await services.formats.get_format(db_session, user.id, uuid.uuid4())


class TestUpdate:
    """Tests for update_format."""

    @pytest.mark.asyncio
    async def test_partial_update_keeps_other_fields(self, services, db_session, user_factory, format_factory):
        """Only sent fields change."""
        user = await user_factory()
        fmt = await format_factory(user)

        updated = await services.formats.update_format(
            db_session, user.id, fmt.id, UserFormatUpdate(title="Retro")
        )

        assert updated.title == "Retro"
        assert updated.format == MEETING_TEMPLATE
        assert updated.instruction == "Keep it short"

    @pytest.mark.asyncio
    async def test_explicit_null_clears_instruction_only(self, services, db_session, user_factory, format_factory):
        """description and instruction accept null; title ignores it."""
        user = await user_factory()
        fmt = await format_factory(user)

        updated = await services.formats.update_format(
            db_session,
            user.id,
            fmt.id,
            UserFormatUpdate.model_validate({"instruction": None, "description": None, "title": None}),
        )

        assert updated.instruction is None
        assert updated.description is None
        assert updated.title == "Meeting Notes"

    @pytest.mark.asyncio
    async def test_update_foreign_template_is_not_found(self, services, db_session, user_factory, format_factory):
        """Another user's template cannot be edited."""
        owner = await user_factory("lee")
        intruder = await user_factory("dana")
        fmt = await format_factory(owner)

        with pytest.raises(NotFoundError):
            await services.formats.update_format(db_session, intruder.id, fmt.id, UserFormatUpdate(title="Mine"))


class TestSoftDelete:
    """Tests for delete_format."""

    @pytest.mark.asyncio
    async def test_deleted_template_disappears_but_row_remains(self, services, db_session, user_factory, format_factory):
        """Soft delete flips is_active; the row is still in the table."""
        user = await user_factory()
        fmt = await format_factory(user)

        result = await services.formats.delete_format(db_session, user.id, fmt.id)

        assert result.message == "User format deleted successfully"
        with pytest.raises(NotFoundError):
            await services.formats.get_format(db_session, user.id, fmt.id)
        listing = await services.formats.list_formats(db_session, user.id, FormatListQuery())
        assert listing.pagination.total == 0

        row = (await db_session.execute(select(UserFormat).where(UserFormat.id == fmt.id))).scalar_one()
        assert row.is_active is False

    @pytest.mark.asyncio
    async def test_second_delete_is_not_found(self, services, db_session, user_factory, format_factory):
        """Deleting twice reports the template as missing."""
        user = await user_factory()
        fmt = await format_factory(user)
        await services.formats.delete_format(db_session, user.id, fmt.id)

        with pytest.raises(NotFoundError):
            await services.formats.delete_format(db_session, user.id, fmt.id)


class TestListFormats:
    """Tests for list_formats."""

    @pytest.mark.asyncio
    async def test_pagination_metadata(self, services, db_session, user_factory, format_factory):
        """12 templates at limit 5: three pages."""
        user = await user_factory()
        for i in range(12):
            await format_factory(user, title=f"Template {i:02d}")

        first = await services.formats.list_formats(db_session, user.id, FormatListQuery(limit=5))
        last = await services.formats.list_formats(db_session, user.id, FormatListQuery(page=3, limit=5))

        assert len(first.data) == 5
        assert first.pagination.total == 12
        assert first.pagination.total_pages == 3
        assert first.pagination.has_next is True
        assert first.pagination.has_prev is False
        assert len(last.data) == 2
        assert last.pagination.has_next is False
        assert last.pagination.has_prev is True

    @pytest.mark.asyncio
    async def test_search_title_and_description(self, services, db_session, user_factory, format_factory):
        """Search is case-insensitive over title and description."""
        user = await user_factory()
        await format_factory(user, title="Daily Standup", description="team sync")
        await format_factory(user, title="Journal", description="Evening STANDUP recap")
        await format_factory(user, title="Recipe", description="cooking")

        result = await services.formats.list_formats(db_session, user.id, FormatListQuery(search="standup"))

        assert {item.title for item in result.data} == {"Daily Standup", "Journal"}

    @pytest.mark.asyncio
    async def test_search_escapes_wildcards(self, services, db_session, user_factory, format_factory):
        """A literal % in the search term matches only a literal %."""
        user = await user_factory()
        await format_factory(user, title="100% done")
        await format_factory(user, title="1000 done")

        result = await services.formats.list_formats(db_session, user.id, FormatListQuery(search="0%"))

        assert [item.title for item in result.data] == ["100% done"]

    @pytest.mark.asyncio
    async def test_sort_by_title(self, services, db_session, user_factory, format_factory):
        """sortBy=title with asc order."""
        user = await user_factory()
        for title in ("Charlie", "Alpha", "Bravo"):
            await format_factory(user, title=title)

        result = await services.formats.list_formats(
            db_session, user.id, FormatListQuery(sort_by="title", sort_order="asc")
        )

        assert [item.title for item in result.data] == ["Alpha", "Bravo", "Charlie"]

    @pytest.mark.asyncio
    async def test_only_own_templates_listed(self, services, db_session, user_factory, format_factory):
        """Listing never leaks other users' templates."""
        dana = await user_factory("dana")
        lee = await user_factory("lee")
        await format_factory(dana, title="Dana's")
        await format_factory(lee, title="Lee's")

        result = await services.formats.list_formats(db_session, dana.id, FormatListQuery())

        assert [item.title for item in result.data] == ["Dana's"]
