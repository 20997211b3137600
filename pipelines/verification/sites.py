"""Host lists used to classify search results."""

from __future__ import annotations

JOB_SITE_HOSTS = (
    "indeed.com",
    "rikunabi.com",
    "mynavi.jp",
    "doda.com",
    "en-japan.com",
    "bizreach.co.jp",
)

BUSINESS_LISTING_HOSTS = (
    "itp.ne.jp",
    "mapion.co.jp",
    "google.com/maps",
    "yelp.com",
    "foursquare.com",
    "facebook.com",
    "navi.co.jp",
    "hotpepper.jp",
    "ekiten.jp",
    "navitime.co.jp",
    "rjcorp.jp",
    "qr-official.com",
)

# Hosts that never count as a company's own site.
THIRD_PARTY_HOSTS = (
    JOB_SITE_HOSTS
    + BUSINESS_LISTING_HOSTS
    + (
        "townwork.net",
        "baitoru.com",
        "wikipedia.org",
        "twitter.com",
        "x.com",
        "instagram.com",
        "linkedin.com",
        "youtube.com",
        "baseconnect.in",
        "houjin.jp",
        "openwork.jp",
        "en-hyouban.com",
    )
)
