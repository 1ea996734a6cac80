from datetime import datetime, timedelta, timezone

import pytest

from core.exceptions import ParseError
from scrapers.parser import UNKNOWN_AUTHOR, PostExtractor


def test_extracts_all_fields(hn_source, row, page, now):
    markup = page(
        row(
            40123,
            title="Show HN: A tiny database",
            href="https://example.com/db",
            score=123,
            author="pg",
            comments="45&nbsp;comments",
        )
    )

    posts = PostExtractor(hn_source).parse_document(markup, now=now)

    assert len(posts) == 1
    post = posts[0]
    assert post.source == "hackernews"
    assert post.source_id == 40123
    assert post.title == "Show HN: A tiny database"
    assert post.link == "https://example.com/db"
    assert post.score == 123
    assert post.author == "pg"
    assert post.comment_count == 45
    assert post.published_at == datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)
    assert post.captured_at == now


def test_keeps_page_order(hn_source, ids_page, now):
    posts = PostExtractor(hn_source).parse_document(ids_page(300, 100, 200), now=now)
    assert [p.source_id for p in posts] == [300, 100, 200]


def test_relative_link_made_absolute(hn_source, row, page, now):
    markup = page(row(7, href="item?id=7", title="Ask HN: Anyone?"))
    post = PostExtractor(hn_source).parse_document(markup, now=now)[0]
    assert post.link == "https://news.ycombinator.com/item?id=7"


@pytest.mark.parametrize("bad_id", [None, "abc", "12x", str(2**63), "1" + "0" * 20])
def test_items_with_bad_id_are_dropped(hn_source, row, page, now, bad_id):
    markup = page(row(1), row(bad_id), row(2))
    posts = PostExtractor(hn_source).parse_document(markup, now=now)
    assert [p.source_id for p in posts] == [1, 2]


def test_item_without_metadata_row_is_dropped(hn_source, row, page, now):
    markup = page(row(5), row(6, with_meta=False))
    posts = PostExtractor(hn_source).parse_document(markup, now=now)
    assert [p.source_id for p in posts] == [5]


def test_missing_author_and_score_default(hn_source, row, page, now):
    markup = page(row(9, author=None, score=None))
    post = PostExtractor(hn_source).parse_document(markup, now=now)[0]
    assert post.author == UNKNOWN_AUTHOR
    assert post.score == 0


@pytest.mark.parametrize(
    "label, expected",
    [
        ("discuss", 0),
        ("1&nbsp;comment", 1),
        ("12&nbsp;comments", 12),
        ("7 comments", 7),
    ],
)
def test_comment_count(hn_source, row, page, now, label, expected):
    post = PostExtractor(hn_source).parse_document(page(row(3, comments=label)), now=now)[0]
    assert post.comment_count == expected


def test_singular_point_score(hn_source, page, now):
    markup = page(
        '<tr class="athing" id="11"><td class="title"><span class="titleline">'
        '<a href="https://example.com">One pointer</a></span></td></tr>'
        '<tr><td class="subtext"><span class="score">1 point</span>'
        ' <span class="age" title="2024-05-30T08:00:00"><a href="item?id=11">1 day ago</a></span>'
        "</td></tr>"
    )
    post = PostExtractor(hn_source).parse_document(markup, now=now)[0]
    assert post.score == 1
    assert post.comment_count == 0


def test_relative_label_used_without_title(hn_source, row, page, now):
    markup = page(row(4, age_title=None, age_text="3 hours ago"))
    post = PostExtractor(hn_source).parse_document(markup, now=now)[0]
    assert post.published_at == now - timedelta(hours=3)


def test_relative_label_used_when_title_unparseable(hn_source, row, page, now):
    markup = page(row(4, age_title="not-a-date 123", age_text="2 days ago"))
    post = PostExtractor(hn_source).parse_document(markup, now=now)[0]
    assert post.published_at == now - timedelta(days=2)


@pytest.mark.parametrize("stamp", ["1999-12-31T23:59:59 946684799", "1970-01-01T00:00:00 0"])
def test_pre_2000_timestamp_coerced_to_now(hn_source, row, page, now, stamp):
    post = PostExtractor(hn_source).parse_document(page(row(4, age_title=stamp)), now=now)[0]
    assert post.published_at == now


def test_unparseable_label_resolves_to_now(hn_source, row, page, now):
    markup = page(row(4, age_title=None, age_text="on a sunny afternoon"))
    post = PostExtractor(hn_source).parse_document(markup, now=now)[0]
    assert post.published_at == now


def test_page_without_items(hn_source, page, now):
    assert PostExtractor(hn_source).parse_document(page(), now=now) == []


@pytest.mark.parametrize("markup", ["", "   \n  "])
def test_blank_document_is_a_parse_error(hn_source, markup):
    with pytest.raises(ParseError):
        PostExtractor(hn_source).parse_document(markup)
