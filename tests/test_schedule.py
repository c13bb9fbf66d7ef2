import asyncio

from fakes import make_account, make_cookies, make_stack


def ids(due):
    return [item.account.account_id for item in due]


async def save(stack, account_id, expires_in=3600):
    await stack.sessions.save(account_id, make_cookies(stack.clock, expires_in))


def test_scan_returns_due_accounts_in_deadline_order():
    async def scenario():
        stack = make_stack([make_account("a"), make_account("b"), make_account("c")])
        now = stack.clock.now_ms()
        for account_id in ("a", "b", "c"):
            await save(stack, account_id)
        await stack.schedule.upsert("b", now - 5_000)
        await stack.schedule.upsert("a", now - 1_000)
        return await stack.schedule.scan_due(now)

    due = asyncio.run(scenario())
    assert ids(due) == ["b", "a"]


def test_deadline_equal_to_now_is_due():
    async def scenario():
        stack = make_stack([make_account("a")])
        await save(stack, "a")
        await stack.schedule.upsert("a", stack.clock.now_ms())
        return await stack.schedule.scan_due()

    assert ids(asyncio.run(scenario())) == ["a"]


def test_nothing_due_returns_empty():
    async def scenario():
        stack = make_stack([make_account("a"), make_account("b")])
        await save(stack, "a")
        await save(stack, "b", expires_in=7200)
        return await stack.schedule.scan_due()

    assert asyncio.run(scenario()) == []


def test_stale_schedule_entries_are_pruned():
    async def scenario():
        stack = make_stack([make_account("a")])
        now = stack.clock.now_ms()
        await save(stack, "a")
        await stack.schedule.upsert("a", now - 1_000)
        await stack.schedule.upsert("deleted", now - 2_000)
        due = await stack.schedule.scan_due(now)
        remaining = await stack.schedule.due_before(now)
        return due, remaining

    due, remaining = asyncio.run(scenario())
    assert ids(due) == ["a"]
    assert [entry.account_id for entry in remaining] == ["a"]


def test_inactive_accounts_are_not_scanned():
    async def scenario():
        stack = make_stack([make_account("a"), make_account("b", status="Inactive")])
        return await stack.schedule.scan_due()

    assert ids(asyncio.run(scenario())) == ["a"]


def test_empty_index_falls_back_to_individual_keys():
    async def scenario():
        stack = make_stack([make_account("a"), make_account("b")])
        now = stack.clock.now_ms()
        await save(stack, "a")
        await save(stack, "b")
        await stack.index.set_deadline("a", now - 10_000)
        # Index lost its entries, individual keys survive.
        stack.cache.zsets.clear()
        return await stack.schedule.scan_due(now)

    assert ids(asyncio.run(scenario())) == ["a"]


def test_unreachable_index_falls_back_to_linear_scan():
    async def scenario():
        stack = make_stack([make_account("a"), make_account("b"), make_account("c")])
        await save(stack, "a", expires_in=600)
        await save(stack, "b", expires_in=7200)
        stack.cache.zset_down = True
        return await stack.schedule.scan_due()

    # "a" expires in ten minutes so its refresh deadline is already now; "c" has no session.
    assert sorted(ids(asyncio.run(scenario()))) == ["a", "c"]


def test_earliest_deadline_prefers_index_then_keys():
    async def scenario():
        stack = make_stack([make_account("a"), make_account("b")])
        now = stack.clock.now_ms()
        await stack.schedule.upsert("a", now + 90_000)
        await stack.schedule.upsert("b", now + 30_000)
        from_index = await stack.schedule.earliest_deadline()
        stack.cache.zset_down = True
        from_keys = await stack.schedule.earliest_deadline()
        return now, from_index, from_keys

    now, from_index, from_keys = asyncio.run(scenario())
    assert from_index == now + 30_000
    assert from_keys == now + 30_000


def test_earliest_deadline_ignores_inactive_accounts():
    async def scenario():
        stack = make_stack([make_account("a"), make_account("b", status="Inactive")])
        now = stack.clock.now_ms()
        await stack.schedule.upsert("b", now + 10_000)
        await stack.schedule.upsert("gone", now + 20_000)
        await stack.schedule.upsert("a", now + 600_000)
        return now, await stack.schedule.earliest_deadline()

    now, deadline = asyncio.run(scenario())
    assert deadline == now + 600_000


def test_remove_clears_index_and_key():
    async def scenario():
        stack = make_stack([make_account("a")])
        await stack.schedule.upsert("a", stack.clock.now_ms())
        await stack.schedule.remove("a")
        return await stack.schedule.earliest(), await stack.index.get_deadline("a")

    assert asyncio.run(scenario()) == (None, None)


def test_pushed_back_account_without_session_waits():
    async def scenario():
        stack = make_stack([make_account("a"), make_account("b")])
        now = stack.clock.now_ms()
        await stack.schedule.upsert("a", now + 120_000)
        return await stack.schedule.scan_due(now)

    assert ids(asyncio.run(scenario())) == ["b"]
