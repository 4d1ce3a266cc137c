"""Tests for the referral ancestry walk used by the admin user card."""

import pytest

from refbot.services.referrals.schemas import ChainEnd


def _ids(chain):
    return [a.tg_id for a in chain.ancestors]


class TestWalkAncestry:
    """A referred by B, B by C, C by D."""

    @pytest.fixture
    def line(self, storage):
        storage.add_user(4, "D")
        storage.add_user(3, "C", referred_by=4)
        storage.add_user(2, "B", "bee", referred_by=3)
        return storage.add_user(1, "A", referred_by=2)

    @pytest.mark.asyncio
    async def test_unreferred_user_is_root(self, storage, service):
        user = storage.add_user(1)

        chain = await service.walk_ancestry(storage, user)

        assert chain.ancestors == []
        assert chain.end == ChainEnd.ROOT
        assert chain.missing_tg_id is None

    @pytest.mark.asyncio
    async def test_full_chain_reaches_root(self, storage, service, line):
        chain = await service.walk_ancestry(storage, line, max_depth=10)

        assert _ids(chain) == [2, 3, 4]
        assert chain.end == ChainEnd.ROOT

    @pytest.mark.asyncio
    async def test_entries_carry_profile(self, storage, service, line):
        chain = await service.walk_ancestry(storage, line)

        first = chain.ancestors[0]
        assert first.first_name == "B"
        assert first.username == "bee"

    @pytest.mark.asyncio
    async def test_depth_limit(self, storage, service, line):
        chain = await service.walk_ancestry(storage, line, max_depth=2)

        assert _ids(chain) == [2, 3]
        assert chain.end == ChainEnd.DEPTH_LIMIT

    @pytest.mark.asyncio
    async def test_depth_exactly_matches_chain(self, storage, service, line):
        """Three ancestors with max_depth 3: D has no referrer, so ROOT."""
        chain = await service.walk_ancestry(storage, line, max_depth=3)

        assert _ids(chain) == [2, 3, 4]
        assert chain.end == ChainEnd.ROOT

    @pytest.mark.asyncio
    async def test_broken_link(self, storage, service):
        storage.add_user(2, "B", referred_by=777)
        user = storage.add_user(1, "A", referred_by=2)

        chain = await service.walk_ancestry(storage, user)

        assert _ids(chain) == [2]
        assert chain.end == ChainEnd.BROKEN_LINK
        assert chain.missing_tg_id == 777

    @pytest.mark.asyncio
    async def test_direct_referrer_missing(self, storage, service):
        user = storage.add_user(1, "A", referred_by=777)

        chain = await service.walk_ancestry(storage, user)

        assert chain.ancestors == []
        assert chain.end == ChainEnd.BROKEN_LINK
        assert chain.missing_tg_id == 777

    @pytest.mark.asyncio
    async def test_cycle_terminates(self, storage, service):
        """Storage does not forbid cycles; the depth bound stops the walk."""
        storage.add_user(2, "B", referred_by=1)
        user = storage.add_user(1, "A", referred_by=2)

        chain = await service.walk_ancestry(storage, user, max_depth=5)

        assert _ids(chain) == [2, 1, 2, 1, 2]
        assert chain.end == ChainEnd.DEPTH_LIMIT

    @pytest.mark.asyncio
    async def test_walk_is_read_only(self, storage, service, line):
        await service.walk_ancestry(storage, line)

        assert set(storage.calls) == {"get_user"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("depth", [0, -1])
    async def test_invalid_depth(self, storage, service, line, depth):
        with pytest.raises(ValueError):
            await service.walk_ancestry(storage, line, max_depth=depth)
