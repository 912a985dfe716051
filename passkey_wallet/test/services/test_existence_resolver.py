import pytest
from unittest.mock import AsyncMock
from ...services.credential_normalizer import NormalizedCredential
from ...services.existence_resolver import ExistenceResolver, lookup_by_credential, lookup_by_identity
from ...services.identity_service import derive_identity
from ...services.ledger_client import LedgerUnavailableError, WalletCandidate
from ...utils.enums import LookupStrategyEnum, WalletStateEnum
from ..conftest import ZERO_CREDENTIAL_ID
from ..fake_ledger import FOREIGN_OWNER


@pytest.fixture
def normalized():
    return NormalizedCredential(credential_id=ZERO_CREDENTIAL_ID, public_key=b"\x02" + bytes(32))


@pytest.fixture
def identity(normalized):
    return derive_identity(normalized)


class TestLookupStrategies:
    """Tests for individual lookup strategies"""

    @pytest.mark.asyncio
    async def test_identity_lookup_returns_derived_address(self, fake_ledger, identity, normalized):
        candidates = await lookup_by_identity(fake_ledger, identity, normalized)

        assert candidates == [WalletCandidate(fake_ledger.derive_wallet_address(identity.wallet_id), identity.wallet_id)]

    @pytest.mark.asyncio
    async def test_index_lookup_inconclusive_without_index(self, fake_ledger, identity, normalized):
        fake_ledger.credential_index[ZERO_CREDENTIAL_ID] = [WalletCandidate("somewhere", 1)]
        assert await lookup_by_credential(fake_ledger, identity, normalized) == []


class TestExistenceResolver:
    """Tests for ExistenceResolver.resolve"""

    @pytest.mark.asyncio
    async def test_absent(self, fake_ledger, identity, normalized):
        account = await ExistenceResolver(fake_ledger).resolve(identity, normalized)

        assert account.state == WalletStateEnum.ABSENT
        assert account.address is None
        assert account.wallet_id == identity.wallet_id

    @pytest.mark.asyncio
    async def test_found_at_derived_address(self, fake_ledger, identity, normalized):
        address = fake_ledger.add_wallet(identity.wallet_id)

        account = await ExistenceResolver(fake_ledger).resolve(identity, normalized)

        assert account.state == WalletStateEnum.EXISTING
        assert account.address == address
        assert account.found_by == LookupStrategyEnum.BY_IDENTITY
        assert account.possibly_foreign is False

    @pytest.mark.asyncio
    async def test_derived_address_authoritative_even_if_foreign(self, fake_ledger, identity, normalized):
        fake_ledger.add_wallet(identity.wallet_id, owner=FOREIGN_OWNER)

        account = await ExistenceResolver(fake_ledger).resolve(identity, normalized)

        assert account.state == WalletStateEnum.EXISTING
        assert account.possibly_foreign is True
        assert account.found_by == LookupStrategyEnum.BY_IDENTITY

    @pytest.mark.asyncio
    async def test_credential_index_finds_wallet_under_other_id(self, indexed_ledger, identity, normalized):
        address = indexed_ledger.add_wallet(777)
        indexed_ledger.credential_index[ZERO_CREDENTIAL_ID] = [WalletCandidate(address, 777)]

        account = await ExistenceResolver(indexed_ledger).resolve(identity, normalized)

        assert account.state == WalletStateEnum.EXISTING
        assert account.address == address
        assert account.wallet_id == 777
        assert account.found_by == LookupStrategyEnum.BY_CREDENTIAL

    @pytest.mark.asyncio
    async def test_passkey_index_used_after_credential_index(self, indexed_ledger, identity, normalized):
        address = indexed_ledger.add_wallet(555)
        indexed_ledger.passkey_index[normalized.public_key] = [WalletCandidate(address, 555)]

        account = await ExistenceResolver(indexed_ledger).resolve(identity, normalized)

        assert account.found_by == LookupStrategyEnum.BY_PUBLIC_KEY
        assert account.wallet_id == 555

    @pytest.mark.asyncio
    async def test_program_owned_candidate_preferred_over_foreign(self, indexed_ledger, identity, normalized):
        foreign = indexed_ledger.add_wallet(1, owner=FOREIGN_OWNER)
        owned = indexed_ledger.add_wallet(2)
        indexed_ledger.credential_index[ZERO_CREDENTIAL_ID] = [WalletCandidate(foreign, 1)]
        indexed_ledger.passkey_index[normalized.public_key] = [WalletCandidate(owned, 2)]

        account = await ExistenceResolver(indexed_ledger).resolve(identity, normalized)

        assert account.address == owned
        assert account.possibly_foreign is False

    @pytest.mark.asyncio
    async def test_foreign_candidate_used_as_fallback(self, indexed_ledger, identity, normalized):
        foreign = indexed_ledger.add_wallet(1, owner=FOREIGN_OWNER)
        indexed_ledger.credential_index[ZERO_CREDENTIAL_ID] = [WalletCandidate(foreign, 1)]

        account = await ExistenceResolver(indexed_ledger).resolve(identity, normalized)

        assert account.state == WalletStateEnum.EXISTING
        assert account.address == foreign
        assert account.possibly_foreign is True

    @pytest.mark.asyncio
    async def test_unverifiable_candidate_ignored(self, indexed_ledger, identity, normalized):
        indexed_ledger.credential_index[ZERO_CREDENTIAL_ID] = [WalletCandidate("closed-account", 3)]

        account = await ExistenceResolver(indexed_ledger).resolve(identity, normalized)

        assert account.state == WalletStateEnum.ABSENT

    @pytest.mark.asyncio
    async def test_lookup_failures_are_inconclusive(self, indexed_ledger, identity, normalized):
        indexed_ledger.get_account_error = LedgerUnavailableError("rpc down")
        indexed_ledger.find_wallets_by_credential = AsyncMock(side_effect=LedgerUnavailableError("rpc down"))

        account = await ExistenceResolver(indexed_ledger).resolve(identity, normalized)

        assert account.state == WalletStateEnum.ABSENT

    @pytest.mark.asyncio
    async def test_custom_strategy_order(self, indexed_ledger, identity, normalized):
        derived = indexed_ledger.add_wallet(identity.wallet_id)
        other = indexed_ledger.add_wallet(9)
        indexed_ledger.credential_index[ZERO_CREDENTIAL_ID] = [WalletCandidate(other, 9)]
        strategies = ((LookupStrategyEnum.BY_CREDENTIAL, lookup_by_credential),
                      (LookupStrategyEnum.BY_IDENTITY, lookup_by_identity))

        account = await ExistenceResolver(indexed_ledger, strategies).resolve(identity, normalized)

        assert account.address == other
        assert account.address != derived
