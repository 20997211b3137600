from __future__ import annotations

import pytest

from app.models.company import CompanyIdentity, ContactExtraction, RejectionReason
from app.services.judge.rules import RuleBasedJudge
from app.services.leads.errors import FatalConfigurationError, GathererUnavailableError
from pipelines.verification import pipeline as pipeline_module
from pipelines.verification.pipeline import PipelineOptions, VerificationPipeline, count_competitor_mentions
from tests.helpers.stubs import FakeClock, ScriptedJudge, StubPageGatherer, StubSearchGatherer, hit

COMPANY = CompanyIdentity(name="株式会社テスト工業", location="東京都港区")
JOB_QUERY = '"株式会社テスト工業" intitle:求人 site:indeed.com'
SECOND_JOB_QUERY = '"株式会社テスト工業" intitle:採用 site:rikunabi.com'
PRIVACY_QUERY = "株式会社テスト工業 東京都港区 プライバシーポリシー"
TERMS_QUERY = "株式会社テスト工業 東京都港区 利用規約"
PHONE_QUERY = "株式会社テスト工業 東京都港区 電話番号"
NEWS_URL = "https://news.example.jp/articles/42"
NEWS_HITS = [
    hit(NEWS_URL, "株式会社テスト工業が採用を強化", "株式会社テスト工業は新卒採用を開始。テスト工業の担当者によると"),
]


def _pipeline(search, pages, judge=None, **options):
    return VerificationPipeline(
        search,
        pages,
        judge or ScriptedJudge(),
        options=PipelineOptions(**options),
    )


def test_no_job_results_rejects_after_five_searches():
    search = StubSearchGatherer()
    pages = StubPageGatherer()

    result = _pipeline(search, pages).verify(COMPANY)

    assert result.accepted is False
    assert result.rejection_reason is RejectionReason.NO_HIRING_SIGNAL
    assert len(search.queries) == len(pipeline_module.JOB_QUERY_TEMPLATES) == 5
    assert pages.fetched == []
    assert pages.extracted == []
    assert result.confidence == 0
    assert result.phone_confidence is None


def test_email_only_official_contact_from_terms_page_is_accepted():
    official_url = "https://www.test-kogyo.co.jp/terms"
    search = StubSearchGatherer(
        {
            JOB_QUERY: NEWS_HITS,
            PRIVACY_QUERY: [],
            TERMS_QUERY: [hit(official_url, "利用規約 | 株式会社テスト工業")],
        }
    )
    pages = StubPageGatherer(
        extractions={
            official_url: ContactExtraction(
                email="info@test-kogyo.co.jp",
                website="https://www.test-kogyo.co.jp",
                confidence=50,
            )
        }
    )

    result = _pipeline(search, pages).verify(COMPANY)

    assert result.accepted is True
    assert result.rejection_reason is None
    assert result.evidence.official_site_confirmed is True
    assert result.evidence.email_candidate == "info@test-kogyo.co.jp"
    assert result.evidence.phone_candidate is None
    assert result.confidence == 40 + 20 + 10 + 5
    assert result.final_confidence >= 70
    assert result.source_urls == [NEWS_URL, official_url]
    assert PHONE_QUERY not in search.queries


def test_failed_cross_check_falls_back_to_next_direct_result():
    first_url = "https://directory.example.com/test-kogyo"
    second_url = "https://www.test-kogyo-group.jp/access"
    listing_url = "https://itp.ne.jp/info/1300001"
    search = StubSearchGatherer(
        {
            JOB_QUERY: NEWS_HITS,
            PHONE_QUERY: [hit(first_url, "会社情報"), hit(second_url, "アクセス")],
            "0311112222": [hit("https://spam.example.com/0311112222", "迷惑電話情報", "03-1111-2222")],
            "0333334444": [hit(listing_url, "株式会社テスト工業 - iタウンページ", "TEL 03-3333-4444")],
        }
    )
    pages = StubPageGatherer(
        extractions={
            first_url: ContactExtraction(phone="03-1111-2222", confidence=50),
            second_url: ContactExtraction(
                phone="03-3333-4444",
                email="contact@test-kogyo-group.jp",
                address="東京都港区芝公園1-1-1",
                confidence=90,
            ),
        }
    )

    result = _pipeline(search, pages).verify(COMPANY)

    assert pages.extracted == [first_url, second_url]
    assert result.accepted is True
    assert result.evidence.phone_candidate == "03-3333-4444"
    assert result.evidence.official_site_confirmed is False
    assert result.evidence.corroborating_sources == [listing_url]
    assert result.confidence == 40 + 25 + 10 + 5
    assert result.phone_confidence == 20 + 40 + 10 + 10
    assert listing_url in result.source_urls


def test_every_contact_failing_cross_check_reports_cross_check_reason():
    contact_url = "https://directory.example.com/test-kogyo"
    search = StubSearchGatherer(
        {
            JOB_QUERY: NEWS_HITS,
            PHONE_QUERY: [hit(contact_url, "会社情報")],
        }
    )
    pages = StubPageGatherer(extractions={contact_url: ContactExtraction(phone="03-1111-2222", confidence=50)})

    result = _pipeline(search, pages).verify(COMPANY)

    assert result.accepted is False
    assert result.rejection_reason is RejectionReason.PHONE_CROSS_CHECK_FAILED
    assert result.evidence.phone_candidate is None


def test_no_contact_anywhere_reports_extraction_failure():
    search = StubSearchGatherer({JOB_QUERY: NEWS_HITS, PHONE_QUERY: [hit("https://blank.example.jp/", "空")]})

    result = _pipeline(search, StubPageGatherer()).verify(COMPANY)

    assert result.rejection_reason is RejectionReason.CONTACT_EXTRACTION_FAILED
    assert result.confidence == 40


def test_low_confidence_extraction_is_skipped():
    url = "https://www.test-kogyo.co.jp/privacy"
    search = StubSearchGatherer(
        {JOB_QUERY: NEWS_HITS, PRIVACY_QUERY: [hit(url, "プライバシーポリシー | 株式会社テスト工業")]}
    )
    pages = StubPageGatherer(extractions={url: ContactExtraction(email="a@test-kogyo.co.jp", confidence=10)})

    result = _pipeline(search, pages).verify(COMPANY)

    assert result.rejection_reason is RejectionReason.CONTACT_EXTRACTION_FAILED


def test_job_site_page_confirms_without_judge():
    job_url = "https://jp.indeed.com/cmp/test-kogyo"
    search = StubSearchGatherer({JOB_QUERY: [hit(job_url, "求人一覧")]})
    pages = StubPageGatherer(texts={job_url: "株式会社テスト工業 求人。テスト工業で働く。テスト工業の福利厚生。"})
    judge = ScriptedJudge()

    result = _pipeline(search, pages, judge).verify(COMPANY)

    assert result.evidence.job_posting_confirmed is True
    assert job_url in result.evidence.source_urls
    assert judge.match_calls == []


def test_job_site_page_dominated_by_competitors_is_not_a_signal():
    job_url = "https://jp.indeed.com/q-construction"
    text = "株式会社テスト工業 株式会社テスト工業 株式会社テスト工業 " + " ".join(
        f"株式会社競合{index:02d}" for index in range(12)
    )
    search = StubSearchGatherer({JOB_QUERY: [hit(job_url, "建設の求人")]})
    pages = StubPageGatherer(texts={job_url: text})

    result = _pipeline(search, pages).verify(COMPANY)

    assert result.rejection_reason is RejectionReason.NO_HIRING_SIGNAL


def test_judge_rejection_blocks_mention_based_signal():
    search = StubSearchGatherer({JOB_QUERY: NEWS_HITS})

    result = _pipeline(search, StubPageGatherer(), ScriptedJudge(match=False)).verify(COMPANY)

    assert result.rejection_reason is RejectionReason.NO_HIRING_SIGNAL


def test_gatherer_failure_is_recorded_and_processing_continues():
    search = StubSearchGatherer(
        {
            JOB_QUERY: GathererUnavailableError("Search failed: upstream", code="BRAVE_429"),
            SECOND_JOB_QUERY: NEWS_HITS,
        }
    )

    result = _pipeline(search, StubPageGatherer()).verify(COMPANY)

    assert result.evidence.job_posting_confirmed is True
    assert any(error.startswith("job_signal:BRAVE_429:") for error in result.errors)


def test_candidate_deadline_yields_timeout():
    clock = FakeClock()

    class SlowSearch(StubSearchGatherer):
        def search(self, query, *, count=10, locale=None):
            clock.advance(100)
            return super().search(query, count=count, locale=locale)

    search = SlowSearch()
    pipeline = VerificationPipeline(
        search,
        StubPageGatherer(),
        ScriptedJudge(),
        options=PipelineOptions(candidate_timeout_seconds=250),
        clock=clock,
    )

    result = pipeline.verify(COMPANY)

    assert result.rejection_reason is RejectionReason.TIMEOUT
    assert len(search.queries) == 3
    assert any(error.startswith("pipeline:TIMEOUT") for error in result.errors)


def test_missing_collaborator_is_fatal():
    with pytest.raises(FatalConfigurationError):
        VerificationPipeline(StubSearchGatherer(), None, RuleBasedJudge())  # type: ignore[arg-type]


def test_source_urls_are_bounded():
    official_url = "https://www.test-kogyo.co.jp/terms"
    hits = [hit(f"https://news{index}.example.jp/", "株式会社テスト工業 採用", "テスト工業 テスト工業") for index in range(8)]
    search = StubSearchGatherer({JOB_QUERY: hits, TERMS_QUERY: [hit(official_url, "株式会社テスト工業")]})
    pages = StubPageGatherer(extractions={official_url: ContactExtraction(email="a@test-kogyo.co.jp", confidence=50)})

    result = _pipeline(search, pages).verify(COMPANY)

    assert len(result.evidence.source_urls) == 9
    assert len(result.source_urls) == 5


def test_competitor_counter_ignores_own_name():
    text = "株式会社テスト工業の求人 株式会社ライバル 有限会社ほかの会社"
    assert count_competitor_mentions(text, "株式会社テスト工業") == 2
    assert count_competitor_mentions("", "株式会社テスト工業") == 0


EMAIL_QUERY = "株式会社テスト工業 東京都港区 メールアドレス"


def test_direct_email_only_contact_is_accepted_on_company_domain():
    contact_url = "https://www.test-kogyo.co.jp/contact"
    search = StubSearchGatherer({JOB_QUERY: NEWS_HITS, EMAIL_QUERY: [hit(contact_url, "お問い合わせ")]})
    pages = StubPageGatherer(
        extractions={
            contact_url: ContactExtraction(
                email="info@test-kogyo.co.jp",
                website="https://test-kogyo.co.jp",
                confidence=50,
            )
        }
    )

    result = _pipeline(search, pages).verify(COMPANY)

    assert result.accepted is True
    assert result.evidence.phone_candidate is None
    assert result.evidence.official_site_confirmed is True
    assert result.confidence == 40 + 20 + 10 + 5
    assert search.queries.index(PHONE_QUERY) < search.queries.index(EMAIL_QUERY)


def test_direct_email_only_contact_without_site_falls_below_threshold():
    contact_url = "https://directory.example.com/test-kogyo"
    search = StubSearchGatherer({JOB_QUERY: NEWS_HITS, EMAIL_QUERY: [hit(contact_url, "企業情報")]})
    pages = StubPageGatherer(
        extractions={contact_url: ContactExtraction(email="info@test-kogyo.co.jp", confidence=50)}
    )

    result = _pipeline(search, pages).verify(COMPANY)

    assert result.accepted is False
    assert result.rejection_reason is RejectionReason.CONFIDENCE_BELOW_THRESHOLD
    assert result.confidence == 40 + 10 + 5
