from datetime import date

import pytest
from pydantic import ValidationError

from campaign_brain.core.context import Defaults, FetchResult, assemble_context, report_date


def test_fetch_result_success_rows():
    r = FetchResult.success({"data": [{"id": "as-1"}]})
    assert r.ok
    assert r.rows() == [{"id": "as-1"}]


def test_fetch_result_success_without_data_key():
    assert FetchResult.success({"raw": "oops"}).rows() == []


def test_fetch_result_failure_placeholder():
    r = FetchResult.failure("FB 500: boom")
    assert not r.ok
    assert r.value() == {"error": "FB 500: boom"}
    assert r.rows() == {"error": "FB 500: boom"}


def test_assemble_passes_placeholders_through():
    payload = assemble_context(
        "acc-1",
        FetchResult.success({"id": "act_1", "account_status": 1}),
        FetchResult.success({"data": [{"id": "as-1"}]}),
        FetchResult.failure("FB 400: insights unavailable"),
        [{"report_data": "r1"}],
        Defaults(),
    )
    assert payload.account_status == {"id": "act_1", "account_status": 1}
    assert payload.adsets == [{"id": "as-1"}]
    assert payload.yesterday_insights == {"error": "FB 400: insights unavailable"}
    assert payload.last_reports == [{"report_data": "r1"}]

    wire = payload.to_prompt_dict()
    assert set(wire) == {
        "userAccountId",
        "account_status",
        "adsets",
        "yesterday_insights",
        "last_reports",
        "defaults",
    }


def test_payload_is_immutable():
    payload = assemble_context(
        "acc-1",
        FetchResult.failure("x"),
        FetchResult.failure("y"),
        FetchResult.failure("z"),
        [],
        Defaults(),
    )
    with pytest.raises(ValidationError):
        payload.adsets = []


def test_report_date_prefers_insights():
    insights = FetchResult.success({"data": [{"date_start": "2026-03-13"}]})
    assert report_date(insights, date(2026, 3, 14)) == "2026-03-13"


def test_report_date_falls_back_to_today():
    assert report_date(FetchResult.failure("x"), date(2026, 3, 14)) == "2026-03-14"
    assert report_date(FetchResult.success({"data": []}), date(2026, 3, 14)) == "2026-03-14"
