"""Tests for the pgvector card store query construction and row decoding."""

import uuid

import numpy as np
import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.schema import CreateIndex

from conftest import BASE_TIME, image_vec, text_vec
from retrieval.card_store import (
    CardRecord,
    PgVectorCardStore,
    build_listing_statement,
    build_ranked_statement,
    decode_card,
    decode_row,
)
from retrieval.models import CardFilters, SearchWeights
from retrieval.score_fusion import FusionConvention
from shared.errors import DimensionMismatch, InvalidQuery, StoreUnavailable

WEIGHTS = SearchWeights(text=0.5, image=0.5)


def compile_sql(statement) -> str:
    return str(statement.compile(dialect=postgresql.dialect()))


def make_row(**overrides):
    row = {
        "id": uuid.UUID("00000000-0000-0000-0000-00000000000a"),
        "player": "Michael Jordan",
        "year": "1986",
        "brand": "Fleer",
        "card_number": "57",
        "psa_grade": "PSA 10",
        "certification_number": "111",
        "sport": "Basketball",
        "image_url": "https://cards.example.com/a.jpg",
        "created_at": BASE_TIME,
        "text_embedding": np.array(text_vec(1.0), dtype=np.float32),
        "image_embedding": None,
        "text_distance": 0.08,
        "image_distance": None,
    }
    row.update(overrides)
    return row


class TestBuildRankedStatement:
    def test_fallback_orders_by_creation(self):
        sql = compile_sql(build_ranked_statement(None, None, CardFilters(), 10, WEIGHTS))
        assert "<=>" not in sql
        assert "ORDER BY cards.created_at ASC, cards.id ASC" in sql
        assert "LIMIT" in sql

    def test_text_only_orders_by_distance(self):
        sql = compile_sql(
            build_ranked_statement(text_vec(1.0), None, CardFilters(), 5, WEIGHTS)
        )
        assert "cards.text_embedding <=>" in sql
        assert "cards.image_embedding <=>" not in sql
        assert "ASC NULLS LAST, cards.created_at ASC, cards.id ASC" in sql
        assert "AS text_distance" in sql
        assert "AS image_distance" in sql

    def test_image_only_orders_by_distance(self):
        sql = compile_sql(
            build_ranked_statement(None, image_vec(1.0), CardFilters(), 5, WEIGHTS)
        )
        assert "cards.image_embedding <=>" in sql
        assert "cards.text_embedding <=>" not in sql

    def test_hybrid_renormalizes_over_present_weights(self):
        sql = compile_sql(
            build_ranked_statement(
                text_vec(1.0), image_vec(1.0), CardFilters(), 5, WEIGHTS
            )
        )
        assert "cards.text_embedding <=>" in sql
        assert "cards.image_embedding <=>" in sql
        assert "nullif(" in sql
        assert "coalesce(" in sql
        assert "DESC NULLS LAST" in sql

    def test_hybrid_zero_coalesce_convention(self):
        sql = compile_sql(
            build_ranked_statement(
                text_vec(1.0),
                image_vec(1.0),
                CardFilters(),
                5,
                WEIGHTS,
                FusionConvention.ZERO_COALESCE,
            )
        )
        assert "coalesce(" in sql
        assert "nullif(" not in sql

    def test_filters_in_where_clause(self):
        sql = compile_sql(
            build_ranked_statement(
                text_vec(1.0), None, CardFilters(player="jordan", grade_min=8), 5, WEIGHTS
            )
        )
        assert "WHERE" in sql
        assert "lower(cards.player)" in sql
        assert "regexp_replace(cards.psa_grade" in sql

    def test_zero_norm_distance_mapped_in_select_and_order(self):
        sql = compile_sql(
            build_ranked_statement(text_vec(1.0), None, CardFilters(), 5, WEIGHTS)
        )
        select_part, order_part = sql.split("ORDER BY")
        assert "'NaN'::float8" in select_part
        assert "'NaN'::float8" in order_part
        assert "CASE WHEN" in order_part

    def test_hybrid_zero_norm_distance_mapped_for_both_modalities(self):
        sql = compile_sql(
            build_ranked_statement(
                text_vec(1.0), image_vec(1.0), CardFilters(), 5, WEIGHTS
            )
        )
        select_part, order_part = sql.split("ORDER BY")
        for part in (select_part, order_part):
            assert part.count("'NaN'::float8") >= 2

    @pytest.mark.parametrize(
        "text_vector,image_vector",
        [(None, None), ("text", None), (None, "image"), ("text", "image")],
    )
    def test_embeddings_not_selected(self, text_vector, image_vector):
        statement = build_ranked_statement(
            text_vec(1.0) if text_vector else None,
            image_vec(1.0) if image_vector else None,
            CardFilters(),
            5,
            WEIGHTS,
        )
        keys = list(statement.selected_columns.keys())
        assert "text_embedding" not in keys
        assert "image_embedding" not in keys
        assert keys[-2:] == ["text_distance", "image_distance"]


class TestListingStatement:
    def test_creation_order_without_embeddings(self):
        statement = build_listing_statement()
        sql = compile_sql(statement)
        assert "ORDER BY cards.created_at ASC, cards.id ASC" in sql
        assert "WHERE" not in sql
        assert "LIMIT" not in sql
        assert "text_embedding" not in statement.selected_columns.keys()
        assert "image_embedding" not in statement.selected_columns.keys()


class TestSchema:
    @pytest.mark.parametrize(
        "index_name", ["cards_text_embedding_hnsw", "cards_image_embedding_hnsw"]
    )
    def test_hnsw_indexes_use_cosine_operator_class(self, index_name):
        index = next(i for i in CardRecord.__table__.indexes if i.name == index_name)
        ddl = str(CreateIndex(index).compile(dialect=postgresql.dialect()))
        assert "USING hnsw" in ddl
        assert "vector_cosine_ops" in ddl


class TestDecodeRow:
    def test_decodes_card_and_similarities(self):
        ranked = decode_row(make_row())
        assert ranked.card.id == "00000000-0000-0000-0000-00000000000a"
        assert ranked.card.player == "Michael Jordan"
        assert ranked.card.text_embedding[0] == pytest.approx(1.0)
        assert ranked.card.image_embedding is None
        assert ranked.text_similarity == pytest.approx(0.92)
        assert ranked.image_similarity is None

    def test_numeric_strings_are_parsed(self):
        ranked = decode_row(make_row(text_distance="0.25"))
        assert ranked.text_similarity == pytest.approx(0.75)

    def test_vector_text_form_is_parsed(self):
        text_form = "[" + ",".join(str(x) for x in image_vec(0.5, 0.5)) + "]"
        ranked = decode_row(make_row(image_embedding=text_form))
        assert ranked.card.image_embedding[:2] == [0.5, 0.5]

    def test_missing_column(self):
        row = make_row()
        del row["image_distance"]
        with pytest.raises(StoreUnavailable, match="image_distance"):
            decode_row(row)

    @pytest.mark.parametrize("value", ["abc", float("nan"), float("inf"), object()])
    def test_bad_distance(self, value):
        with pytest.raises(StoreUnavailable):
            decode_row(make_row(text_distance=value))

    def test_null_required_field(self):
        with pytest.raises(StoreUnavailable):
            decode_row(make_row(image_url=None))

    def test_wrong_stored_dimension(self):
        with pytest.raises(DimensionMismatch):
            decode_row(make_row(text_embedding=np.zeros(384)))

    def test_zero_norm_card_decodes_to_zero_similarity(self):
        # The query maps NaN from a zero-norm embedding to distance 1.0
        ranked = decode_row(make_row(text_distance=1.0, image_distance=1.0))
        assert ranked.text_similarity == 0.0
        assert ranked.image_similarity == 0.0

    def test_ranked_row_without_embedding_columns(self):
        row = make_row()
        del row["text_embedding"]
        del row["image_embedding"]
        ranked = decode_row(row)
        assert ranked.card.text_embedding is None
        assert ranked.card.image_embedding is None
        assert ranked.text_similarity == pytest.approx(0.92)


class TestDecodeCard:
    def test_listing_row(self):
        row = make_row()
        for column in ("text_embedding", "image_embedding", "text_distance", "image_distance"):
            del row[column]
        card = decode_card(row)
        assert card.id == "00000000-0000-0000-0000-00000000000a"
        assert card.created_at == BASE_TIME
        assert card.text_embedding is None

    def test_missing_card_column(self):
        row = make_row()
        del row["sport"]
        with pytest.raises(StoreUnavailable, match="sport"):
            decode_card(row)


class TestPgVectorCardStore:
    def test_invalid_limit_rejected_before_querying(self):
        store = PgVectorCardStore("postgresql+psycopg://user:pw@127.0.0.1:1/cards")
        with pytest.raises(InvalidQuery):
            store.ranked_search(None, None, CardFilters(), 0, WEIGHTS)
        assert store._engine is None

    def test_query_vector_dimension_checked(self):
        store = PgVectorCardStore("postgresql+psycopg://user:pw@127.0.0.1:1/cards")
        with pytest.raises(DimensionMismatch):
            store.ranked_search([1.0, 0.0], None, CardFilters(), 5, WEIGHTS)

    def test_unreachable_database(self):
        store = PgVectorCardStore(
            "postgresql+psycopg://user:pw@127.0.0.1:1/cards?connect_timeout=1"
        )
        with pytest.raises(StoreUnavailable):
            store.ranked_search(text_vec(1.0), None, CardFilters(), 5, WEIGHTS)

    def test_unreachable_database_on_listing(self):
        store = PgVectorCardStore(
            "postgresql+psycopg://user:pw@127.0.0.1:1/cards?connect_timeout=1"
        )
        with pytest.raises(StoreUnavailable):
            store.list_cards()
