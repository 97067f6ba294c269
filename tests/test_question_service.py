"""Tests for sellerdesk/questions/service.py — aggregation, history, answers."""

from datetime import datetime, timedelta, timezone

import pytest

from sellerdesk.errors import AuthExpired, EmptyText, MarketplaceError, NotFound
from sellerdesk.items.cache import ItemMetadataCache
from sellerdesk.questions.service import QuestionService, clamp_limit, parse_timestamp

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _question(qid: int, item_id: str, age_days: float, **extra) -> dict:
    created = (NOW - timedelta(days=age_days)).isoformat()
    return {"id": qid, "item_id": item_id, "date_created": created, "text": f"Pergunta {qid}", **extra}


@pytest.fixture
def items(marketplace, tokens):
    async def lookup(token, ids):
        return [
            {"code": 200, "body": {
                "id": i, "title": f"Item {i}",
                "thumbnail": f"http://img.example/{i}.jpg",
                "permalink": f"https://produto.example/{i}",
            }}
            for i in ids if i != "MLB-GONE"
        ]

    marketplace.get_items.side_effect = lookup
    return ItemMetadataCache(marketplace, tokens)


@pytest.fixture
def service(seeded_registry, tokens, marketplace, items):
    return QuestionService(seeded_registry, tokens, marketplace, items, max_age_days=90)


@pytest.fixture
async def tenant(seeded_registry):
    return await seeded_registry.find(1001)


class TestForTenant:

    async def test_keeps_only_questions_inside_window(self, service, tenant, marketplace):
        marketplace.search_questions.return_value = {"questions": [
            _question(1, "MLB1", 89),
            _question(2, "MLB1", 91),
        ]}

        questions = await service.for_tenant(tenant, now=NOW)

        assert [q["id"] for q in questions] == [1]

    async def test_invalid_dates_are_excluded(self, service, tenant, marketplace):
        marketplace.search_questions.return_value = {"questions": [
            {"id": 1, "item_id": "MLB1", "date_created": "not a date"},
            {"id": 2, "item_id": "MLB1"},
            _question(3, "MLB1", 1),
        ]}

        questions = await service.for_tenant(tenant, now=NOW)

        assert [q["id"] for q in questions] == [3]

    async def test_enriches_with_store_and_item(self, service, tenant, marketplace):
        marketplace.search_questions.return_value = {"questions": [_question(1, "MLB1", 2)]}

        [question] = await service.for_tenant(tenant, now=NOW)

        assert question["text"] == "Pergunta 1"
        assert question["store_id"] == 1001
        assert question["store_name"] == "Loja Centro"
        assert question["item_title"] == "Item MLB1"
        assert question["item_thumbnail"] == "https://img.example/MLB1.jpg"
        assert question["item_permalink"] == "https://produto.example/MLB1"

    async def test_missing_item_leaves_blanks(self, service, tenant, marketplace):
        marketplace.search_questions.return_value = {"questions": [_question(1, "MLB-GONE", 2)]}

        [question] = await service.for_tenant(tenant, now=NOW)

        assert question["item_title"] == ""
        assert question["item_thumbnail"] == ""
        assert question["item_permalink"] == ""

    async def test_item_ids_looked_up_in_one_batch(self, service, tenant, marketplace):
        marketplace.search_questions.return_value = {"questions": [
            _question(1, "MLB1", 1), _question(2, "MLB2", 1), _question(3, "MLB1", 1),
        ]}

        await service.for_tenant(tenant, now=NOW)

        marketplace.get_items.assert_called_once()
        assert marketplace.get_items.call_args.args[1] == ["MLB1", "MLB2"]

    async def test_searches_unanswered_for_the_tenant(self, service, tenant, marketplace):
        marketplace.search_questions.return_value = {"questions": []}

        assert await service.for_tenant(tenant, now=NOW) == []

        marketplace.search_questions.assert_called_once_with("APP_USR-access-1001", 1001)
        marketplace.get_items.assert_not_called()


class TestListAll:

    async def test_aggregates_every_store(self, service, marketplace):
        recent = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()

        async def search(token, seller_id):
            return {"questions": [
                {"id": f"q-{seller_id}", "item_id": "MLB1", "date_created": recent},
            ]}

        marketplace.search_questions.side_effect = search

        questions = await service.list_all()

        assert [q["id"] for q in questions] == ["q-1001", "q-2002"]
        assert [q["store_name"] for q in questions] == ["Loja Centro", "Loja Norte"]

    async def test_failing_store_is_skipped(self, service, marketplace):
        recent = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()

        async def search(token, seller_id):
            if str(seller_id) == "1001":
                raise MarketplaceError("forbidden", upstream_status=403)
            return {"questions": [{"id": 7, "item_id": "MLB1", "date_created": recent}]}

        marketplace.search_questions.side_effect = search

        questions = await service.list_all()

        assert [q["store_id"] for q in questions] == ["2002"]

    async def test_unexpected_failure_in_one_store_keeps_the_others(self, service, marketplace):
        recent = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()

        async def search(token, seller_id):
            item_id = "MLB-BAD" if str(seller_id) == "1001" else "MLB-OK"
            return {"questions": [{"id": f"q-{seller_id}", "item_id": item_id, "date_created": recent}]}

        async def lookup(token, ids):
            if "MLB-BAD" in ids:
                raise RuntimeError("unexpected payload")
            return [{"code": 200, "body": {"id": i, "title": f"Item {i}"}} for i in ids]

        marketplace.search_questions.side_effect = search
        marketplace.get_items.side_effect = lookup

        questions = await service.list_all()

        assert [q["id"] for q in questions] == ["q-2002"]
        assert questions[0]["item_title"] == "Item MLB-OK"

    async def test_malformed_item_pictures_do_not_drop_store(self, service, marketplace):
        recent = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()

        async def search(token, seller_id):
            return {"questions": [{"id": f"q-{seller_id}", "item_id": f"MLB{seller_id}", "date_created": recent}]}

        async def lookup(token, ids):
            return [{"code": 200, "body": {"id": i, "title": "T", "pictures": {"bad": 1}}} for i in ids]

        marketplace.search_questions.side_effect = search
        marketplace.get_items.side_effect = lookup

        questions = await service.list_all()

        assert [q["id"] for q in questions] == ["q-1001", "q-2002"]
        assert all(q["item_thumbnail"] == "" for q in questions)

    async def test_no_stores(self, registry, tokens, marketplace, items):
        service = QuestionService(registry, tokens, marketplace, items)
        assert await service.list_all() == []
        marketplace.search_questions.assert_not_called()


class TestHistory:

    async def test_maps_rows(self, service, marketplace):
        marketplace.question_history.return_value = {"questions": [
            {
                "id": 11, "date_created": "2026-05-01T10:00:00.000-04:00", "text": "Tem azul?",
                "answer": {"text": "Temos sim.", "date_created": "2026-05-01T11:00:00.000-04:00"},
                "from": {"id": 9, "nickname": "COMPRADOR"},
            },
            {"id": 12, "date_created": "2026-05-02T10:00:00.000-04:00", "text": "E verde?", "answer": None},
        ]}

        rows = await service.history("1001", "MLB1")

        assert rows == [
            {
                "id": 11, "date_created": "2026-05-01T10:00:00.000-04:00", "text": "Tem azul?",
                "answer_text": "Temos sim.", "answer_date": "2026-05-01T11:00:00.000-04:00",
                "from_id": 9, "from_nickname": "COMPRADOR",
            },
            {
                "id": 12, "date_created": "2026-05-02T10:00:00.000-04:00", "text": "E verde?",
                "answer_text": "", "answer_date": "",
                "from_id": None, "from_nickname": "",
            },
        ]

    @pytest.mark.parametrize(("requested", "sent"), [
        (None, 10), ("5", 5), (0, 10), (-3, 1), (100, 30), ("abc", 10),
    ])
    async def test_limit_is_clamped(self, service, marketplace, requested, sent):
        marketplace.question_history.return_value = {"questions": []}

        await service.history(1001, "MLB1", requested)

        marketplace.question_history.assert_called_once_with("APP_USR-access-1001", "MLB1", 1001, sent)

    async def test_unknown_store(self, service, marketplace):
        with pytest.raises(NotFound, match="Store not found"):
            await service.history("9999", "MLB1")
        marketplace.question_history.assert_not_called()


class TestAnswer:

    async def test_posts_trimmed_text(self, service, marketplace):
        marketplace.post_answer.return_value = {"status": "ANSWERED"}

        result = await service.answer("1001", 555, "  Sim, temos.  ")

        assert result == {"refreshed": False}
        marketplace.post_answer.assert_called_once_with("APP_USR-access-1001", 555, "Sim, temos.")

    async def test_reports_refresh(self, service, marketplace):
        marketplace.refresh_access_token.return_value = {"access_token": "APP_USR-new"}
        marketplace.post_answer.side_effect = [AuthExpired("expired"), {"status": "ANSWERED"}]

        result = await service.answer(1001, 555, "Sim")

        assert result == {"refreshed": True}
        assert marketplace.post_answer.call_args.args[0] == "APP_USR-new"

    async def test_upstream_rejection_propagates(self, service, marketplace):
        marketplace.post_answer.side_effect = MarketplaceError("question closed", upstream_status=400)
        with pytest.raises(MarketplaceError):
            await service.answer(1001, 555, "Sim")

    async def test_empty_text(self, service, marketplace):
        with pytest.raises(EmptyText):
            await service.answer(1001, 555, "   ")
        marketplace.post_answer.assert_not_called()

    async def test_unknown_store(self, service, marketplace):
        with pytest.raises(NotFound):
            await service.answer("9999", 555, "Sim")
        marketplace.post_answer.assert_not_called()


class TestParseTimestamp:

    def test_offset(self):
        parsed = parse_timestamp("2026-05-01T10:00:00.000-04:00")
        assert parsed == datetime(2026, 5, 1, 14, 0, tzinfo=timezone.utc)

    def test_zulu_and_naive(self):
        expected = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
        assert parse_timestamp("2026-05-01T10:00:00Z") == expected
        assert parse_timestamp("2026-05-01T10:00:00") == expected

    @pytest.mark.parametrize("value", [None, "", "yesterday", 12345])
    def test_invalid(self, value):
        assert parse_timestamp(value) is None


class TestClampLimit:

    @pytest.mark.parametrize(("value", "expected"), [
        (1, 1), (30, 30), (31, 30), (0, 10), (-1, 1), (None, 10), ("7", 7), ("x", 10),
    ])
    def test_values(self, value, expected):
        assert clamp_limit(value) == expected
