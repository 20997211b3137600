from app.services.judge.rules import RuleBasedJudge

PAGE = "会社概要 株式会社サンプル 〒150-0041 東京都渋谷区神南1-2-3 TEL 03-1234-5678 info@sample.co.jp logo@2x.png"


def test_is_match_counts_cleaned_name():
    judge = RuleBasedJudge()

    assert judge.is_match("(株)サンプル の採用情報", "株式会社サンプル") is True
    assert judge.is_match("別の会社の情報", "株式会社サンプル") is False


def test_min_mentions_raises_the_bar():
    judge = RuleBasedJudge(min_mentions=2)

    assert judge.is_match("サンプル", "株式会社サンプル") is False
    assert judge.is_match("サンプル サンプル", "株式会社サンプル") is True


def test_official_site_rejects_job_and_review_pages():
    judge = RuleBasedJudge()

    assert judge.is_official_site("会社概要 | 株式会社サンプル", "株式会社サンプル") is True
    assert judge.is_official_site("株式会社サンプルの求人・転職情報", "株式会社サンプル") is False
    assert judge.is_official_site("株式会社サンプルの口コミ", "株式会社サンプル") is False
    assert judge.is_official_site("https://unrelated.example.com", "株式会社サンプル") is False


def test_extract_phone_email_and_address():
    extraction = RuleBasedJudge().extract(PAGE, "株式会社サンプル")

    assert extraction.phone == "03-1234-5678"
    assert extraction.email == "info@sample.co.jp"
    assert extraction.address == "東京都渋谷区神南1-2-3"
    assert extraction.confidence == 90


def test_extract_single_channel_confidence():
    extraction = RuleBasedJudge().extract("お問い合わせ: contact@sample.co.jp", "株式会社サンプル")

    assert extraction.phone is None
    assert extraction.confidence == 50


def test_extract_nothing():
    extraction = RuleBasedJudge().extract("no contact here", "株式会社サンプル")

    assert extraction.has_contact is False
    assert extraction.confidence == 0
