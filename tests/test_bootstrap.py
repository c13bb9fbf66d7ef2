import asyncio
from unittest.mock import MagicMock

import main
from refresher.core import db


def test_bad_numeric_env_exits_cleanly(monkeypatch):
    monkeypatch.setenv("MAX_CONCURRENT_LOGINS", "abc")
    from_url = MagicMock()
    monkeypatch.setattr(main.CacheLayer, "from_url", from_url)

    assert asyncio.run(main.run("once")) == 1
    from_url.assert_not_called()


def test_accounts_collection_uses_configured_names(monkeypatch):
    motor_client = MagicMock()
    factory = MagicMock(return_value=motor_client)
    monkeypatch.setattr(db, "AsyncIOMotorClient", factory)
    db.close_client()
    try:
        collection = db.get_accounts_col("operators", database="portal", uri="mongodb://db:27017")
        other = db.get_accounts_col("admins", database="legacy")
    finally:
        db.close_client()

    factory.assert_called_once_with("mongodb://db:27017")
    motor_client.__getitem__.assert_any_call("portal")
    motor_client.__getitem__.assert_any_call("legacy")
    database = motor_client.__getitem__.return_value
    database.__getitem__.assert_any_call("operators")
    database.__getitem__.assert_any_call("admins")
    assert collection is database.__getitem__.return_value
    assert other is collection
