"""
Tests del motor de reconciliación (funciones puras).
No requieren base de datos ni red.
Todas las aserciones usan Decimal para evitar errores de precisión.
"""

from dataclasses import replace
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from core.exceptions import InvalidStateError
from services.reconciliation import (
    API_FETCH_2DAY,
    ARCHIVED,
    ARCHIVED_NOTE,
    COMPETITION_ARCHIVED,
    COMPETITION_RESTORED,
    DAILY_FETCH_2DAY,
    MANUAL_BACKFILL,
    MANUAL_ENTRY,
    MANUAL_SHIFT_UPDATE,
    MANUAL_UPDATE,
    ONGOING,
    RESTORED_NOTE,
    TOP_VOLUME,
    TRADING_VOLUME,
    FetchedVolume,
    NewToken,
    ReportingClock,
    TokenState,
    TokenUpdate,
    VolumeUpdate,
    apply_fetched_volume,
    apply_manual_edit,
    compute_total_prize,
    seed_token,
    set_archive_state,
)
from conftest import BANGKOK, NOW

TODAY = date(2026, 3, 10)
YESTERDAY = date(2026, 3, 9)

# ---------------------------------------------------------------------------
# Helpers de fixtures
# ---------------------------------------------------------------------------


def make_token(**overrides) -> TokenState:
    """TokenState mínimo en competición, con valores redondos."""
    base = TokenState(
        id=1,
        name="KOGE",
        slug="koge",
        top_today=Decimal("100"),
        top_yesterday=Decimal("50"),
        volume_today=Decimal("1000"),
        volume_yesterday=Decimal("900"),
        amount=Decimal("10"),
        current_price=Decimal("2"),
        total_prize=Decimal("20"),
        created_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
        updated_at=datetime(2026, 3, 1, tzinfo=timezone.utc),
    )
    return replace(base, **overrides)


def edit(**fields) -> TokenUpdate:
    return TokenUpdate.model_validate(fields)


# ===========================================================================
# Tests: ReportingClock
# ===========================================================================


class TestReportingClock:
    def test_today_and_yesterday_follow_reporting_timezone(self, clock):
        assert clock.timestamp == NOW
        assert clock.today == TODAY
        assert clock.yesterday == YESTERDAY

    def test_utc_evening_is_already_next_day_in_bangkok(self):
        # 18:30 UTC = 01:30 del día siguiente en UTC+7
        clock = ReportingClock.at(datetime(2026, 3, 9, 18, 30, tzinfo=timezone.utc), BANGKOK)
        assert clock.today == TODAY
        assert clock.yesterday == YESTERDAY

    def test_timestamp_is_normalised_to_utc(self):
        local = datetime(2026, 3, 10, 12, 0, tzinfo=BANGKOK)
        clock = ReportingClock.at(local, BANGKOK)
        assert clock.timestamp.tzinfo == timezone.utc
        assert clock.timestamp == NOW

    def test_naive_datetime_is_rejected(self):
        with pytest.raises(ValueError):
            ReportingClock.at(datetime(2026, 3, 10, 5, 0), BANGKOK)


# ===========================================================================
# Tests: compute_total_prize
# ===========================================================================


class TestComputeTotalPrize:
    def test_price_times_amount(self):
        assert compute_total_prize(Decimal("0.5"), Decimal("3000")) == Decimal("1500")

    def test_missing_price_gives_none(self):
        assert compute_total_prize(None, Decimal("10")) is None

    def test_zero_amount_gives_none(self):
        assert compute_total_prize(Decimal("2"), Decimal("0")) is None

    def test_rounded_to_eight_decimals(self):
        result = compute_total_prize(Decimal("0.123456789"), Decimal("1"))
        assert result == Decimal("0.12345679")


# ===========================================================================
# Tests: seed_token
# ===========================================================================


class TestSeedToken:
    def test_normalises_name_and_slug(self, clock):
        result = seed_token(NewToken(name=" koge ", slug="KoGe", top_today=Decimal("5")), clock)
        assert result.token.name == "KOGE"
        assert result.token.slug == "koge"
        assert result.token.status == ONGOING
        assert result.token.created_at == NOW

    def test_appends_single_manual_entry(self, clock):
        result = seed_token(NewToken(name="KOGE", slug="koge", top_today=Decimal("5")), clock)
        assert len(result.entries) == 1
        entry = result.entries[0]
        assert entry.kind == TOP_VOLUME
        assert entry.type == MANUAL_ENTRY
        assert entry.date == TODAY
        assert entry.value == Decimal("5")
        assert entry.previous_value is None

    def test_empty_numeric_fields_default_to_zero(self, clock):
        new = NewToken.model_validate({"name": "X", "slug": "x", "topToday": "", "amount": None})
        result = seed_token(new, clock)
        assert result.token.top_today == Decimal("0")
        assert result.token.amount == Decimal("0")
        assert result.entries[0].value == Decimal("0")

    def test_blank_name_is_rejected(self):
        with pytest.raises(ValidationError):
            NewToken(name="   ", slug="x")


# ===========================================================================
# Tests: apply_manual_edit
# ===========================================================================


class TestApplyManualEdit:
    def test_regular_update(self, clock):
        result = apply_manual_edit(make_token(), edit(topToday=120), clock)

        assert len(result.entries) == 1
        entry = result.entries[0]
        assert entry.kind == TOP_VOLUME
        assert entry.type == MANUAL_UPDATE
        assert entry.date == TODAY
        assert entry.value == Decimal("120")
        assert entry.previous_value == Decimal("100")
        assert result.token.top_today == Decimal("120")

    def test_shift_update_when_yesterday_receives_old_today(self, clock):
        result = apply_manual_edit(make_token(), edit(topToday=120, topYesterday=100), clock)

        assert [e.type for e in result.entries] == [MANUAL_SHIFT_UPDATE]
        entry = result.entries[0]
        assert entry.date == TODAY
        assert entry.value == Decimal("120")
        assert entry.previous_value == Decimal("100")
        assert result.token.top_yesterday == Decimal("100")

    def test_new_yesterday_different_from_old_today_is_regular_update(self, clock):
        result = apply_manual_edit(make_token(), edit(topToday=120, topYesterday=80), clock)
        # topToday presente: la regla de backfill de ayer no aplica
        assert [e.type for e in result.entries] == [MANUAL_UPDATE]

    def test_legacy_backfill_of_yesterday(self, clock):
        result = apply_manual_edit(make_token(), edit(topYesterday=70), clock)

        assert len(result.entries) == 1
        entry = result.entries[0]
        assert entry.kind == TOP_VOLUME
        assert entry.type == MANUAL_BACKFILL
        assert entry.date == YESTERDAY
        assert entry.value == Decimal("70")
        assert entry.previous_value == Decimal("50")

    def test_unchanged_top_today_appends_nothing(self, clock):
        result = apply_manual_edit(make_token(), edit(topToday=100), clock)
        assert result.entries == []

    def test_trading_backfill_is_independent(self, clock):
        result = apply_manual_edit(make_token(), edit(topToday=120, volumeYesterday=950), clock)

        assert [e.type for e in result.entries_of(TOP_VOLUME)] == [MANUAL_UPDATE]
        trading = result.entries_of(TRADING_VOLUME)
        assert len(trading) == 1
        assert trading[0].type == MANUAL_BACKFILL
        assert trading[0].date == YESTERDAY
        assert trading[0].value == Decimal("950")
        assert trading[0].previous_value == Decimal("900")

    def test_all_rules_share_one_timestamp(self, clock):
        result = apply_manual_edit(make_token(), edit(topYesterday=70, volumeYesterday=950), clock)
        assert len(result.entries) == 2
        assert {e.timestamp for e in result.entries} == {NOW}

    def test_clearing_volume_yesterday_appends_nothing(self, clock):
        result = apply_manual_edit(make_token(), edit(volumeYesterday=None), clock)
        assert result.entries == []
        assert result.token.volume_yesterday is None

    def test_patch_refreshes_updated_at_but_not_last_updated(self, clock):
        token = make_token(last_updated=datetime(2026, 3, 9, tzinfo=timezone.utc))
        result = apply_manual_edit(token, edit(amount=20), clock)

        assert result.token.updated_at == NOW
        assert result.token.last_updated == token.last_updated

    def test_explicit_last_updated_is_applied(self, clock):
        stamp = datetime(2026, 3, 8, 1, 0, tzinfo=timezone.utc)
        result = apply_manual_edit(make_token(), edit(lastUpdated=stamp.isoformat()), clock)
        assert result.token.last_updated == stamp

    def test_total_prize_recomputed_and_never_taken_from_input(self, clock):
        result = apply_manual_edit(make_token(), edit(amount=30, totalPrize=1), clock)
        assert result.token.total_prize == Decimal("60")

    def test_amount_zero_clears_total_prize(self, clock):
        result = apply_manual_edit(make_token(), edit(amount=0), clock)
        assert result.token.total_prize is None

    def test_name_and_slug_are_normalised(self, clock):
        result = apply_manual_edit(make_token(), edit(name="newkoge", slug="NewKoge"), clock)
        assert result.token.name == "NEWKOGE"
        assert result.token.slug == "newkoge"

    def test_status_change_sets_archived_at_without_history(self, clock):
        result = apply_manual_edit(make_token(), edit(status="archived"), clock)
        assert result.token.status == ARCHIVED
        assert result.token.archived_at == NOW
        assert result.entries == []

    def test_null_for_required_field_is_rejected(self):
        with pytest.raises(ValidationError):
            edit(topToday=None)

    def test_unknown_status_is_rejected(self):
        with pytest.raises(ValidationError):
            edit(status="paused")

    def test_input_token_is_not_modified(self, clock):
        token = make_token()
        apply_manual_edit(token, edit(topToday=120), clock)
        assert token.top_today == Decimal("100")


# ===========================================================================
# Tests: apply_fetched_volume
# ===========================================================================


class TestApplyFetchedVolume:
    def test_sets_both_days_without_shifting(self, clock):
        fetched = FetchedVolume(Decimal("1500"), Decimal("1200"), Decimal("3"))
        result = apply_fetched_volume(make_token(), fetched, clock, DAILY_FETCH_2DAY)

        token = result.token
        assert token.volume_today == Decimal("1500")
        assert token.volume_yesterday == Decimal("1200")
        assert token.current_price == Decimal("3")
        assert token.total_prize == Decimal("30")
        assert token.last_updated == NOW

    def test_appends_one_trading_entry_without_previous_value(self, clock):
        fetched = FetchedVolume(Decimal("1500"), Decimal("1200"), None)
        result = apply_fetched_volume(make_token(), fetched, clock, API_FETCH_2DAY)

        assert len(result.entries) == 1
        entry = result.entries[0]
        assert entry.kind == TRADING_VOLUME
        assert entry.type == API_FETCH_2DAY
        assert entry.date == TODAY
        assert entry.value == Decimal("1500")
        assert entry.previous_value is None
        assert entry.timestamp == NOW

    def test_missing_price_keeps_current_price(self, clock):
        fetched = FetchedVolume(Decimal("1500"), Decimal("1200"), None)
        result = apply_fetched_volume(make_token(), fetched, clock)
        assert result.token.current_price == Decimal("2")
        assert result.token.total_prize == Decimal("20")

    def test_missing_today_volume_updates_token_without_entry(self, clock):
        fetched = FetchedVolume(None, Decimal("1200"), None)
        result = apply_fetched_volume(make_token(), fetched, clock)
        assert result.entries == []
        assert result.token.volume_today is None
        assert result.token.volume_yesterday == Decimal("1200")

    def test_archived_token_is_rejected(self, clock):
        token = make_token(status=ARCHIVED)
        with pytest.raises(InvalidStateError):
            apply_fetched_volume(token, FetchedVolume(Decimal("1"), None, None), clock)

    def test_manual_entry_type_is_not_a_fetch(self, clock):
        with pytest.raises(ValueError):
            apply_fetched_volume(make_token(), FetchedVolume(Decimal("1"), None, None), clock, MANUAL_UPDATE)

    def test_volume_update_keeps_fields_not_sent(self, clock):
        fetched = FetchedVolume.from_update(VolumeUpdate.model_validate({"volumeToday": 5}))
        result = apply_fetched_volume(make_token(), fetched, clock)

        assert result.token.volume_today == Decimal("5")
        assert result.token.volume_yesterday == Decimal("900")
        assert result.token.current_price == Decimal("2")
        assert len(result.entries) == 1

    def test_volume_update_without_today_writes_no_entry(self, clock):
        token = make_token(volume_today=Decimal("1500"))
        fetched = FetchedVolume.from_update(VolumeUpdate.model_validate({"volumeYesterday": 1200}))
        result = apply_fetched_volume(token, fetched, clock)

        assert result.entries == []
        assert result.token.volume_today == Decimal("1500")
        assert result.token.volume_yesterday == Decimal("1200")

    def test_fetcher_without_price_keeps_price(self, clock):
        result = apply_fetched_volume(make_token(), FetchedVolume(Decimal("1"), None, None), clock)
        assert result.token.current_price == Decimal("2")
        assert result.token.volume_yesterday is None


# ===========================================================================
# Tests: set_archive_state
# ===========================================================================


class TestSetArchiveState:
    def test_archive_appends_marker_entry(self, clock):
        result = set_archive_state(make_token(), True, clock)

        assert result.token.status == ARCHIVED
        assert result.token.archived_at == NOW
        entry = result.entries[0]
        assert entry.kind == TOP_VOLUME
        assert entry.type == COMPETITION_ARCHIVED
        assert entry.value == Decimal("100")
        assert entry.note == ARCHIVED_NOTE

    def test_archive_then_restore_keeps_top_today(self, clock):
        archived = set_archive_state(make_token(), True, clock)
        restored = set_archive_state(archived.token, False, clock)

        types = [e.type for e in archived.entries + restored.entries]
        assert types == [COMPETITION_ARCHIVED, COMPETITION_RESTORED]
        assert restored.entries[0].note == RESTORED_NOTE
        assert restored.token.status == ONGOING
        assert restored.token.archived_at is None
        assert restored.token.top_today == Decimal("100")

    def test_same_state_is_noop(self, clock):
        token = make_token()
        result = set_archive_state(token, False, clock)
        assert result.entries == []
        assert result.token == token


# ===========================================================================
# Propiedad: total_prize coherente tras cualquier mutación
# ===========================================================================


@pytest.mark.parametrize(
    "mutate",
    [
        lambda t, c: apply_manual_edit(t, edit(amount=7), c),
        lambda t, c: apply_manual_edit(t, edit(currentPrice=None), c),
        lambda t, c: apply_manual_edit(t, edit(topToday=1), c),
        lambda t, c: apply_fetched_volume(t, FetchedVolume(Decimal("1"), None, Decimal("0.25")), c),
        lambda t, c: set_archive_state(t, True, c),
    ],
)
def test_total_prize_invariant_holds_after_mutation(mutate, clock):
    token = mutate(make_token(), clock).token
    if token.current_price is not None and token.amount:
        assert token.total_prize == token.current_price * token.amount
    else:
        assert token.total_prize is None
