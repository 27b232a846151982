import pytest
from pymongo.errors import BulkWriteError, ServerSelectionTimeoutError

from app.modules.alerts import repository
from app.modules.alerts.documents import AlertRuleDocument
from app.modules.alerts.exceptions import StoreError


@pytest.mark.asyncio
async def test_pymongo_errors_become_store_errors() -> None:
    with pytest.raises(StoreError) as exc_info:
        async with repository._store_errors("save_all_alerts"):
            raise ServerSelectionTimeoutError("no primary")

    assert "save_all_alerts" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, ServerSelectionTimeoutError)


@pytest.mark.asyncio
async def test_other_errors_pass_through() -> None:
    with pytest.raises(KeyError):
        async with repository._store_errors("get_alert"):
            raise KeyError("id")


@pytest.mark.asyncio
async def test_no_session_without_transactions(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(repository.settings, "MONGODB_USE_TRANSACTIONS", False)

    async with repository._transaction() as session:
        assert session is None


@pytest.mark.asyncio
async def test_no_session_without_client(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(repository.settings, "MONGODB_USE_TRANSACTIONS", True)
    monkeypatch.setattr(repository.db, "MONGO_CLIENT", None)

    async with repository._transaction() as session:
        assert session is None


def test_duplicate_key_positions_are_reported() -> None:
    exc = BulkWriteError(
        {
            "writeErrors": [
                {"index": 0, "code": 11000, "errmsg": "E11000 duplicate key"},
                {"index": 3, "code": 11000, "errmsg": "E11000 duplicate key"},
            ],
            "writeConcernErrors": [],
            "nInserted": 2,
        }
    )

    assert repository._duplicate_key_indexes(exc) == {0, 3}


def test_other_bulk_write_failures_are_not_ignored() -> None:
    exc = BulkWriteError(
        {
            "writeErrors": [
                {"index": 0, "code": 11000, "errmsg": "E11000 duplicate key"},
                {"index": 1, "code": 121, "errmsg": "Document failed validation"},
            ],
            "writeConcernErrors": [],
        }
    )

    assert repository._duplicate_key_indexes(exc) is None


def test_seed_key_index_is_unique() -> None:
    index = next(
        model.document
        for model in AlertRuleDocument.Settings.indexes
        if model.document["key"].keys() == {"seed_key"}
    )

    assert index["unique"] is True
    assert index["sparse"] is True


def test_rule_documents_do_not_restamp_timestamps() -> None:
    hooks = [value for value in vars(AlertRuleDocument).values() if getattr(value, "has_action", False)]

    assert hooks == []
