import pytest

from chat_oracle.balance import OVERRIDE_JOB_ID, BalanceView


@pytest.fixture
def view(scheduler) -> BalanceView:
    return BalanceView(scheduler, override_seconds=5.0)


def test_defaults_require_deposit(view) -> None:
    assert view.display_balance is None
    assert not view.has_active_subscription
    assert view.needs_deposit
    assert view.formatted_balance() is None


def test_update_uses_authoritative_values(view) -> None:
    view.update(3, 10**18)

    assert view.has_active_subscription
    assert not view.needs_deposit
    assert view.formatted_balance() == "1.000000"


def test_zero_balance_needs_deposit(view) -> None:
    view.update(3, 0)

    assert view.has_active_subscription
    assert view.needs_deposit


@pytest.mark.asyncio
async def test_override_wins_until_it_expires(view, scheduler) -> None:
    view.update(3, 10**18)

    view.apply_override(0)

    assert view.display_balance == 0
    assert view.needs_deposit
    assert scheduler.get_job(OVERRIDE_JOB_ID).trigger == "date"

    await scheduler.fire(OVERRIDE_JOB_ID)

    assert view.override is None
    assert view.display_balance == 10**18


def test_revert_override_cancels_expiry(view, scheduler) -> None:
    view.update(3, 10**18)
    view.apply_override(0)

    view.revert_override()

    assert view.override is None
    assert view.display_balance == 10**18
    assert scheduler.get_job(OVERRIDE_JOB_ID) is None


def test_revert_without_override_is_noop(scheduler) -> None:
    calls = []
    view = BalanceView(scheduler, on_change=lambda: calls.append(1))

    view.revert_override()

    assert calls == []
