"""Tests for the usage meter."""

from __future__ import annotations

import logging

import pytest

from lectern.config import PriceTable
from lectern.metering import UsageMeter
from lectern.rag.llm_client import TokenUsage


@pytest.fixture
def priced_meter(repo) -> UsageMeter:
    table = PriceTable.from_dict(
        {
            "openai/gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
            "text-embedding-3-small": {"input": 0.00002},
        }
    )
    return UsageMeter(repo, table)


def test_cost_formula(priced_meter):
    assert priced_meter.cost("openai/gpt-4o-mini", 2000, 1000) == pytest.approx(
        2 * 0.00015 + 1 * 0.0006
    )


def test_price_lookup_falls_back_to_bare_model_name(priced_meter):
    assert priced_meter.cost("openai/text-embedding-3-small", 1000, 0) == pytest.approx(0.00002)


def test_unknown_model_costs_zero_and_warns(priced_meter, caplog):
    with caplog.at_level(logging.WARNING, logger="lectern.metering"):
        assert priced_meter.cost("acme/mystery-1", 5000, 5000) == 0.0
    assert "acme/mystery-1" in caplog.text


def test_record_persists_row(priced_meter, repo):
    record = priced_meter.record("openai/gpt-4o-mini", prompt_tokens=100, completion_tokens=50)
    assert record.id is not None
    assert record.created_at is not None
    assert record.total_tokens == 150
    (stored,) = repo.list_usage()
    assert stored == record


def test_unknown_model_still_recorded(priced_meter, repo):
    priced_meter.record("acme/mystery-1", prompt_tokens=10)
    (stored,) = repo.list_usage()
    assert stored.model == "acme/mystery-1"
    assert stored.cost == 0.0


def test_record_usage_keeps_reported_total(priced_meter):
    record = priced_meter.record_usage(
        "openai/gpt-4o-mini", TokenUsage(prompt_tokens=10, completion_tokens=5, total_tokens=20)
    )
    assert record.total_tokens == 20


def test_report_totals_and_order(priced_meter):
    first = priced_meter.record("openai/gpt-4o-mini", 1000, 0)
    second = priced_meter.record("openai/gpt-4o-mini", 0, 1000)

    report = priced_meter.report()
    assert [r.id for r in report.records] == [second.id, first.id]
    assert report.totals.total_tokens == 2000
    assert report.totals.total_cost == pytest.approx(0.00015 + 0.0006)


def test_empty_report(priced_meter):
    report = priced_meter.report()
    assert report.records == []
    assert report.totals.total_cost == 0.0
    assert report.totals.total_tokens == 0
