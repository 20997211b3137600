import pytest

from app.models.company import EvidenceBundle
from pipelines.verification.confidence import (
    COMPANY_ACCEPT_THRESHOLD,
    COMPANY_WEIGHTS,
    HIGH_QUALITY_THRESHOLD,
    PHONE_WEIGHTS,
    CompanySignals,
    PhoneSignals,
    company_breakdown,
    company_signals,
    phone_signals,
    score_company,
    score_phone,
)


def test_phone_table_all_signals_sum_to_100():
    signals = PhoneSignals(
        phone_format_valid=True,
        phone_company_associated=True,
        corroborating_sources=3,
        business_listing_found=True,
    )
    assert score_phone(signals) == 100


def test_phone_table_without_signals_is_zero():
    assert score_phone(PhoneSignals()) == 0


def test_corroborating_sources_are_capped_at_30():
    assert score_phone(PhoneSignals(corroborating_sources=7)) == 30
    assert score_phone(PhoneSignals(corroborating_sources=2)) == 20


def test_company_table_sums_to_100():
    assert sum(COMPANY_WEIGHTS.values()) == 100
    everything = CompanySignals(
        company_exists=True,
        official_site_found=True,
        phone_verified=True,
        contact_extracted=True,
        multiple_sources=True,
    )
    assert score_company(everything) == 100
    assert score_company(CompanySignals()) == 0


def test_company_breakdown_reports_each_weight():
    breakdown = company_breakdown(CompanySignals(company_exists=True, contact_extracted=True))
    assert breakdown["company_exists"] == 40
    assert breakdown["contact_extracted"] == 10
    assert breakdown["official_site_found"] == 0


def test_weight_tables_are_read_only():
    assert PHONE_WEIGHTS["phone_company_associated"] == 40
    with pytest.raises(TypeError):
        PHONE_WEIGHTS["phone_company_associated"] = 0  # type: ignore[index]


def test_thresholds():
    assert COMPANY_ACCEPT_THRESHOLD == 60
    assert HIGH_QUALITY_THRESHOLD == 70


def test_signals_derived_from_evidence():
    evidence = EvidenceBundle(
        phone_candidate="03-1234-5678",
        job_posting_confirmed=True,
        official_site_confirmed=True,
        phone_format_valid=True,
        phone_company_associated=True,
        source_urls=["https://jp.indeed.com/a", "https://www.example.co.jp/", "https://example.co.jp/contact"],
        corroborating_sources=["https://itp.ne.jp/1", "https://itp.ne.jp/1"],
    )
    company = company_signals(evidence)
    assert company.phone_verified is True
    assert company.contact_extracted is True
    assert company.multiple_sources is True
    assert phone_signals(evidence).corroborating_sources == 1


def test_single_host_is_not_multiple_sources():
    evidence = EvidenceBundle(source_urls=["https://www.example.co.jp/a", "https://example.co.jp/b"])
    assert company_signals(evidence).multiple_sources is False


def test_phone_without_association_is_not_verified():
    evidence = EvidenceBundle(phone_candidate="03-1234-5678", phone_format_valid=True)
    assert company_signals(evidence).phone_verified is False
