"""
Hypothesis Property-Based Tests for the credit ledger and authorization.

Exercises the counter arithmetic and the authorization decision without a
database.
"""

from datetime import UTC, datetime, timedelta

from hypothesis import given
from hypothesis import strategies as st

from app.models.domain import AccountBalance, CreditMode
from app.permissions import Permission, is_authorized
from app.services.credits import (
    apply_credit,
    apply_debit,
    apply_reset,
    available_for_mode,
    is_reset_due,
    one_month_ago,
)

# ============================================================================
# Hypothesis Strategies
# ============================================================================

counters_values = st.integers(min_value=-1_000_000, max_value=1_000_000)
amounts = st.integers(min_value=0, max_value=1_000_000)
permissions = st.sampled_from(list(Permission))
permission_sets = st.frozensets(st.sampled_from([p.value for p in Permission]))
limited_user_types = st.text(max_size=3).filter(lambda v: v != "1")
instants = st.datetimes(
    min_value=datetime(2000, 1, 1), max_value=datetime(2100, 12, 31), timezones=st.just(UTC)
)


@st.composite
def balances(draw):
    return AccountBalance(
        user_id=draw(st.integers(min_value=1, max_value=10_000)),
        balance=draw(counters_values),
        total_credits=draw(counters_values),
    )


# ============================================================================
# Ledger arithmetic
# ============================================================================


@given(balances(), amounts)
def test_debit_then_credit_restores_counters(counters: AccountBalance, amount: int):
    assert apply_credit(apply_debit(counters, amount), amount) == counters


@given(balances(), amounts)
def test_debit_moves_both_counters_equally(counters: AccountBalance, amount: int):
    after = apply_debit(counters, amount)
    assert counters.balance - after.balance == amount
    assert counters.total_credits - after.total_credits == amount


@given(balances(), amounts)
def test_reset_replaces_balance_and_accumulates_total(counters: AccountBalance, monthly: int):
    after = apply_reset(counters, monthly)
    assert after.balance == monthly
    assert after.total_credits == counters.total_credits + monthly


@given(balances(), st.sampled_from(list(CreditMode)))
def test_available_credits_is_one_of_the_counters(counters: AccountBalance, mode: CreditMode):
    available = available_for_mode(counters.balance, counters.total_credits, mode)
    assert available in (counters.balance, counters.total_credits)


# ============================================================================
# Monthly reset schedule
# ============================================================================


@given(instants)
def test_reset_not_due_within_the_month(now: datetime):
    assert not is_reset_due(now, now)
    assert not is_reset_due(one_month_ago(now), now)


@given(instants)
def test_reset_due_just_past_one_month(now: datetime):
    assert is_reset_due(one_month_ago(now) - timedelta(seconds=1), now)


@given(instants)
def test_one_month_ago_is_between_28_and_31_days(now: datetime):
    delta = now - one_month_ago(now)
    assert timedelta(days=28) <= delta <= timedelta(days=31)


# ============================================================================
# Authorization
# ============================================================================


@given(permission_sets, permissions)
def test_super_admin_always_authorized(granted: frozenset[str], required: Permission):
    assert is_authorized("1", granted, required)


@given(limited_user_types, permission_sets, permissions)
def test_limited_admin_needs_exact_permission(
    user_type: str, granted: frozenset[str], required: Permission
):
    assert is_authorized(user_type, granted, required) == (required.value in granted)


@given(limited_user_types, permissions)
def test_limited_admin_without_permissions_is_denied(user_type: str, required: Permission):
    assert not is_authorized(user_type, [], required)
